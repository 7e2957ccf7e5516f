import unittest

from timesheet_doctor.anomalies import (
    WARNING_RULES,
    check_record,
    detect,
    expected_hours,
    find_duplicates,
    format_hours,
    parse_clock,
)
from timesheet_doctor.models import SEVERITIES, WARNING_TYPES, AttendanceRecord, RelatedRecord


def record(**overrides):
    base = {
        "date": "2024-01-05",
        "name": "Kim",
        "clock_in": "09:00",
        "clock_out": "18:00",
        "break_time": 1,
        "total_hours": 8,
    }
    base.update(overrides)
    return AttendanceRecord(**base)


class DuplicateTests(unittest.TestCase):
    def test_same_date_and_name_is_one_duplicate_entry(self):
        duplicates = find_duplicates([record(), record(), record(name="Lee")])
        self.assertEqual(len(duplicates), 1)
        entry = duplicates[0]
        self.assertEqual((entry.date, entry.name, entry.count), ("2024-01-05", "Kim", 2))
        self.assertEqual(entry.details, "Kim님이 2024-01-05에 2건 중복 등록되었습니다.")

    def test_groups_keep_first_seen_order(self):
        records = [record(name="B"), record(name="A"), record(name="A"), record(name="B")]
        self.assertEqual([d.name for d in find_duplicates(records)], ["B", "A"])

    def test_no_duplicates(self):
        self.assertEqual(find_duplicates([record(), record(date="2024-01-06")]), [])


class WarningRuleTests(unittest.TestCase):
    def test_overtime_boundary(self):
        warnings = check_record(record(overtime_hours=5))
        self.assertEqual([(w.type, w.severity) for w in warnings], [("overtime", "high")])
        self.assertIn("5시간", warnings[0].message)
        self.assertEqual(check_record(record(overtime_hours=4)), [])

    def test_long_shift_boundary(self):
        warnings = check_record(record(clock_out="22:00", break_time=0, total_hours=13))
        self.assertEqual([(w.type, w.severity) for w in warnings], [("pattern", "high")])
        self.assertEqual(check_record(record(clock_out="21:00", break_time=0, total_hours=12)), [])

    def test_missing_clock_out(self):
        warnings = check_record(record(clock_out=""))
        self.assertEqual(len(warnings), 1)
        self.assertEqual((warnings[0].type, warnings[0].severity), ("missing_data", "medium"))
        self.assertIn("퇴근시간", warnings[0].message)
        self.assertEqual(warnings[0].related_records, (RelatedRecord("2024-01-05", "Kim"),))

    def test_missing_clock_in_is_named_first(self):
        warnings = check_record(record(clock_in="", clock_out=""))
        self.assertEqual(len(warnings), 1)
        self.assertIn("출근시간", warnings[0].message)

    def test_consistent_hours_within_tolerance(self):
        self.assertEqual(check_record(record(total_hours=8.5)), [])

    def test_inconsistent_hours(self):
        warnings = check_record(record(total_hours=6))
        self.assertEqual([(w.type, w.severity) for w in warnings], [("inconsistency", "medium")])
        self.assertIn("(8.0h)", warnings[0].message)
        self.assertIn("(6.0h)", warnings[0].message)

    def test_zero_total_skips_consistency_check(self):
        self.assertEqual(check_record(record(total_hours=0)), [])

    def test_overnight_shift_is_flagged_as_inconsistent(self):
        overnight = record(clock_in="22:00", clock_out="06:00", break_time=1, total_hours=7)
        self.assertEqual(expected_hours(overnight), -17)
        self.assertEqual([w.type for w in check_record(overnight)], ["inconsistency"])

    def test_one_record_can_raise_several_warnings(self):
        warnings = check_record(record(clock_out="23:00", break_time=0, total_hours=14, overtime_hours=6))
        self.assertEqual([w.type for w in warnings], ["overtime", "pattern"])

    def test_unparseable_clock_skips_consistency_check(self):
        self.assertIsNone(parse_clock("오전 9시"))
        self.assertEqual(check_record(record(clock_in="오전 9시", total_hours=3)), [])

    def test_clock_seconds_are_ignored(self):
        self.assertEqual(parse_clock("09:30:59"), 9.5)


class DetectTests(unittest.TestCase):
    def test_detect_returns_both_lists(self):
        duplicates, warnings = detect([record(), record(), record(name="Lee", overtime_hours=5)])
        self.assertEqual(len(duplicates), 1)
        self.assertEqual(len(warnings), 1)

    def test_rule_taxonomy_uses_known_types(self):
        for rule_id, rule in WARNING_RULES.items():
            if rule["type"] != "duplicate":
                self.assertIn(rule["type"], WARNING_TYPES, rule_id)
            self.assertIn(rule["severity"], SEVERITIES, rule_id)

    def test_format_hours(self):
        self.assertEqual(format_hours(5.0), "5")
        self.assertEqual(format_hours(5.5), "5.5")
        self.assertEqual(format_hours(4.25), "4.25")


if __name__ == "__main__":
    unittest.main()
