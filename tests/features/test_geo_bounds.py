import pytest

from gp_backend.features.geo import CacheDocument, DateRange, GeoItem, Position, bounds_for_date_range, eastmost, westmost


def _doc(*points):
    items = [
        GeoItem(id=f"g{i}", position=Position(lat, lng), date=date, thumbnail_url="", name="", folder_index=0)
        for i, (lat, lng, date) in enumerate(points)
    ]
    return CacheDocument(schema_version=5, id="root", size=0, geo_items=items)


def test_bounds_across_antimeridian_stay_narrow():
    box = bounds_for_date_range(_doc((10.0, 179.0, 20200101), (-5.0, -179.0, 20200101)), None)

    assert box.sw.lng == 179.0
    assert box.ne.lng == -179.0
    assert box.sw.lat == -5.0
    assert box.ne.lat == 10.0
    assert (box.ne.lng - box.sw.lng) % 360 == pytest.approx(2.0)


def test_bounds_only_cover_dates_in_range():
    doc = _doc((1.0, 1.0, 20190101), (2.0, 2.0, 20200601), (50.0, 50.0, 20210101))

    box = bounds_for_date_range(doc, DateRange(20200101, 20210101))

    assert box.to_dict() == {"sw": {"lat": 2.0, "lng": 2.0}, "ne": {"lat": 2.0, "lng": 2.0}}


def test_bounds_none_when_nothing_matches():
    assert bounds_for_date_range(_doc((1.0, 1.0, 20190101)), DateRange(20200101, 20210101)) is None
    assert bounds_for_date_range(_doc(), None) is None


def test_bounds_do_not_alias_item_positions():
    doc = _doc((1.0, 1.0, 20190101), (3.0, 3.0, 20190101))

    bounds_for_date_range(doc, None)

    assert doc.geo_items[0].position == Position(1.0, 1.0)


@pytest.mark.parametrize(
    ("a", "b", "west", "east"),
    [
        (10.0, 20.0, 10.0, 20.0),
        (20.0, 10.0, 10.0, 20.0),
        (179.0, -179.0, 179.0, -179.0),
        (-179.0, 179.0, 179.0, -179.0),
        (-170.0, 540.0, 540.0, -170.0),
    ],
)
def test_westmost_eastmost(a, b, west, east):
    assert westmost(a, b) == west
    assert eastmost(a, b) == east
