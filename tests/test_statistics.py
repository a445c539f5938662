import itertools

from photoclone.models.statistics import RunStatistics


def _samples():
    return [
        RunStatistics(copied=2, skipped=1),
        RunStatistics(converted=3, resized=2, to_heic=3, quality_adjusted=1),
        RunStatistics(converted=1, gps_added=1),
        RunStatistics(skipped=4),
    ]


def test_addition_is_commutative_and_has_zero():
    a, b, *_ = _samples()
    assert a + b == b + a
    assert a + RunStatistics() == a


def test_addition_is_associative():
    a, b, c, _ = _samples()
    assert (a + b) + c == a + (b + c)


def test_merge_of_any_partition_matches_total():
    parts = _samples()
    total = RunStatistics.merge(parts)
    for order in itertools.permutations(parts):
        assert RunStatistics.merge([RunStatistics.merge(order[:2]), RunStatistics.merge(order[2:])]) == total
    assert total.copied == 2
    assert total.converted == 4
    assert total.skipped == 5
    assert total.total == 11


def test_as_dict_lists_every_counter():
    data = RunStatistics(to_avif=1).as_dict()
    assert data["to_avif"] == 1
    assert set(data) == {
        "skipped",
        "copied",
        "converted",
        "resized",
        "quality_adjusted",
        "to_jpeg",
        "to_heic",
        "to_avif",
        "gps_added",
    }
