from __future__ import annotations

import main_comparison


def test_main_comparison_prints_both_windows(capsys):
    main_comparison.main()
    out = capsys.readouterr().out
    assert "summer_day_ab (full horizon)" in out
    assert "06:00-22:00" in out
    assert "autoconsumption_pct" in out
