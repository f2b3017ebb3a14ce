import csv

from speedtest.report import RAW_FIELDNAMES, dump_csv, print_summary
from speedtest.stats import compute_stats
from speedtest.tester import TesterResult, TransferRecord
from speedtest.transfer import Direction


def sample_results():
    return [
        TesterResult(pair_index=0, transactions=[
            TransferRecord("0x01", 1_200.5, 51_000, Direction.A_TO_B),
            TransferRecord("0x02", 1_800.25, 34_000, Direction.B_TO_A),
        ]),
        TesterResult(
            pair_index=1,
            transactions=[TransferRecord("0x03", 900.0, 51_000, Direction.A_TO_B)],
            completed_cleanly=False,
            unit_on_a=False,
        ),
    ]


def test_dump_csv_writes_every_transfer(tmp_path):
    path = dump_csv(sample_results(), tmp_path / "logs" / "raw.csv")

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    assert list(rows[0].keys()) == RAW_FIELDNAMES
    assert [r["tx_hash"] for r in rows] == ["0x01", "0x02", "0x03"]
    assert rows[1]["direction"] == "B→A"
    assert rows[2]["completed_cleanly"] == "False"


def test_print_summary_marks_errored_testers(capsys):
    results = sample_results()
    print_summary(compute_stats(results, 4_000), "Base Sepolia", results, traffic_shaped=True)
    out = capsys.readouterr().out

    assert "USDC Speedtest Results - Base Sepolia" in out
    assert "Total transactions:  2" in out
    assert "1 of 2 (1 errored out)" in out
    assert "Tester #1:  1 txs,  avg 900 ms (errored) (USDC left on receiver)" in out
    assert "traffic-shaped" in out
