import pandas as pd
import pytest

from tank_model.data.loader import align_series, read_station_series


def test_read_station_text_file(tmp_path):
    path = tmp_path / "flow.txt"
    path.write_text(
        "; Shimen inflow\n"
        "RSHME 2024-05-01T01:00 50.5\n"
        "RSHME 2024-05-01T00:00 43.31\n"
        "\n"
        "RSHME 2024-05-01T02:00 -1\n",
        encoding="utf-8",
    )
    series = read_station_series(path)
    assert list(series.index) == list(pd.date_range("2024-05-01 00:00", periods=3, freq=pd.Timedelta(hours=1)))
    assert series.tolist() == [43.31, 50.5, -1.0]
    assert series.name == "flow"


def test_read_station_csv_file(tmp_path):
    path = tmp_path / "rain.csv"
    path.write_text("datetime,rainfall\n2024-05-01 00:00,1.5\n2024-05-01 01:00,0\n", encoding="utf-8")
    series = read_station_series(path, name="rainfall")
    assert series.tolist() == [1.5, 0.0]
    assert series.name == "rainfall"


def test_unsupported_suffix(tmp_path):
    path = tmp_path / "rain.json"
    path.write_text("{}", encoding="utf-8")
    with pytest.raises(ValueError):
        read_station_series(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_station_series(tmp_path / "absent.txt")


def test_align_fills_gaps():
    index = pd.date_range("2024-05-01", periods=4, freq=pd.Timedelta(hours=1))
    rain = pd.Series([1.0, 2.0, 3.0], index=index[[0, 1, 3]])
    flow = pd.Series([10.0, 12.0], index=index[[1, 2]])
    frame = align_series(rain, flow, 3600.0)
    assert list(frame.index) == list(index)
    assert frame["rainfall"].tolist() == [1.0, 2.0, 0.0, 3.0]
    assert frame["runoff"].tolist() == [-1.0, 10.0, 12.0, -1.0]


def test_align_rejects_empty():
    with pytest.raises(ValueError):
        align_series(pd.Series(dtype=float), pd.Series(dtype=float), 3600.0)
