# tests/test_export.py

from __future__ import annotations

import csv
import io
import re
from datetime import date, datetime, timezone

from ddlog.export import CSV_HEADER, export_filename, tasks_to_csv, tasks_to_pdf


def _page_count(pdf: bytes) -> int:
    # the page tree carries the largest /Count in the file
    return max(int(n) for n in re.findall(rb"/Count (\d+)", pdf))


def _sample(store, owner_id, clock):
    clock.now = datetime(2026, 2, 14, 9, 5, tzinfo=timezone.utc)
    done = store.create(owner_id, "Pay rent", description="transfer, then file receipt", category="home")
    clock.now = datetime(2026, 2, 14, 18, 40, tzinfo=timezone.utc)
    store.update(owner_id, done.id, {"completed": True})
    store.create(owner_id, "Call mom <3", reminder_time="19:00")
    return store.list(owner_id)


def test_csv_rows(store, owner_id, clock) -> None:
    tasks = _sample(store, owner_id, clock)

    raw = tasks_to_csv(tasks)
    assert raw.startswith(b"\xef\xbb\xbf")

    rows = list(csv.reader(io.StringIO(raw.decode("utf-8-sig"))))
    assert rows[0] == CSV_HEADER
    assert len(rows) == 3
    by_name = {r[0]: r for r in rows[1:]}
    assert by_name["Pay rent"][1] == "transfer, then file receipt"
    assert by_name["Pay rent"][2] == "Yes"
    assert by_name["Pay rent"][3] == "home"
    assert by_name["Pay rent"][5] == "14/02/2026 09:05"
    assert by_name["Pay rent"][6] == "14/02/2026 18:40"
    assert by_name["Call mom <3"][2] == "No"
    assert by_name["Call mom <3"][4] == "19:00"
    assert by_name["Call mom <3"][6] == ""


def test_csv_empty_has_header_only() -> None:
    rows = list(csv.reader(io.StringIO(tasks_to_csv([]).decode("utf-8-sig"))))
    assert rows == [CSV_HEADER]


def test_pdf_is_a_pdf(store, owner_id, clock) -> None:
    tasks = _sample(store, owner_id, clock)
    pdf = tasks_to_pdf(tasks, date(2026, 2, 7), date(2026, 2, 14), generated_at=clock.now)
    assert pdf.startswith(b"%PDF")
    assert pdf.rstrip().endswith(b"%%EOF")


def test_pdf_paginates_long_lists(store, owner_id) -> None:
    short = tasks_to_pdf([store.create(owner_id, "only one")], date(2026, 1, 1), date(2026, 1, 7))
    for i in range(120):
        store.create(owner_id, f"task {i}", description="some words " * 10)
    long = tasks_to_pdf(store.list(owner_id), date(2026, 1, 1), date(2026, 1, 7))

    assert _page_count(short) == 1
    assert _page_count(long) > 1


def test_pdf_without_tasks() -> None:
    assert tasks_to_pdf([], date(2026, 1, 1), date(2026, 1, 7)).startswith(b"%PDF")


def test_export_filename() -> None:
    assert export_filename("csv", date(2026, 1, 1), date(2026, 1, 7)) == "tasks_2026-01-01_2026-01-07.csv"
