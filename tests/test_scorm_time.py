"""
Session time parsing tests
"""

import pytest

from scorm_backend.utils.scorm_time import parse_session_time


class TestParseSessionTime:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (90, 90.0),
            (12.5, 12.5),
            ("45", 45.0),
            ("0000:01:30", 90.0),
            ("01:00:00.50", 3600.5),
            ("PT1H2M3.5S", 3723.5),
            ("PT45S", 45.0),
            ("P1DT1S", 86401.0),
            ("pt2m", 120.0),
        ],
    )
    def test_accepted_formats(self, value, expected):
        assert parse_session_time(value) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "value",
        ["", "   ", "soon", "1:2", "PT", "P", "-5", -1, float("inf"), True],
    )
    def test_rejected_values(self, value):
        with pytest.raises(ValueError):
            parse_session_time(value)
