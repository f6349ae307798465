import itertools

import pytest

from twin_aggregator.averaging import aggregate_readings, average
from twin_aggregator.models import EnvironmentalReading


class TestAverage:
    def test_empty_sequence(self):
        assert average([], "temperature") is None

    def test_all_absent(self):
        readings = [EnvironmentalReading(humidity=40), EnvironmentalReading()]

        assert average(readings, "temperature") is None

    def test_absent_values_are_ignored_not_zero(self):
        readings = [
            EnvironmentalReading(temperature=20.0),
            EnvironmentalReading(),
            EnvironmentalReading(temperature=24.0),
        ]

        assert average(readings, "temperature") == 22.0

    def test_callable_selector(self):
        readings = [EnvironmentalReading(co2=400), EnvironmentalReading(co2=600)]

        assert average(readings, lambda r: r.co2) == 500.0

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            average([EnvironmentalReading()], "pressure")

    def test_permutation_invariant(self):
        values = [0.1, 1e16, 0.2, -1e16, 0.3, 21.7]
        readings = [EnvironmentalReading(temperature=v) for v in values]

        results = {
            average(list(order), "temperature")
            for order in itertools.permutations(readings)
        }

        assert len(results) == 1

    def test_accepts_generator(self):
        assert average((EnvironmentalReading(humidity=h) for h in (50, 70)), "humidity") == 60.0


class TestAggregateReadings:
    def test_per_metric_means(self):
        aggregate = aggregate_readings([
            EnvironmentalReading(temperature=20, humidity=50),
            EnvironmentalReading(temperature=24, humidity=70),
        ])

        assert aggregate == EnvironmentalReading(temperature=22.0, humidity=60.0, co2=None)
        assert aggregate.to_document() == {"temperature": 22.0, "humidity": 60.0}

    def test_empty_sibling_set(self):
        assert aggregate_readings([]).to_document() == {}
