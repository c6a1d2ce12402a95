import unittest

from src.opprime.catalog import (
    ImpactedUserCount,
    ImpactLevel,
    ImpactScheme,
    PriorityCode,
    UrgencyLevel,
)
from src.opprime.priority import (
    PriorityCalculator,
    PriorityMatrix,
    PriorityMatrixError,
    PriorityOverrideRule,
)


class TestMatrixLookup(unittest.TestCase):
    def test_every_cell_is_deterministic(self):
        calc = PriorityCalculator()
        for urgency in UrgencyLevel:
            for users in (1, 10, 40, 150, 700, 5000):
                first = calc.calculate(urgency, users)
                second = calc.calculate(urgency, users)
                self.assertEqual(first, second)
                self.assertTrue(first.inputs_valid)
                self.assertEqual(first.source, "matrix")

    def test_known_cells_user_count(self):
        calc = PriorityCalculator()
        self.assertEqual(calc.calculate(UrgencyLevel.HIGH, 5).code, PriorityCode.P3)
        self.assertEqual(calc.calculate(UrgencyLevel.HIGH, 5000).code, PriorityCode.P1)
        self.assertEqual(calc.calculate(UrgencyLevel.LOW, 5).code, PriorityCode.P4)
        self.assertEqual(calc.calculate(UrgencyLevel.MEDIUM, ImpactedUserCount.TWO_HUNDRED).code, PriorityCode.P2)

    def test_known_cells_impact_level(self):
        calc = PriorityCalculator(matrix=PriorityMatrix.impact_level_default())
        self.assertEqual(calc.calculate(UrgencyLevel.HIGH, ImpactLevel.HIGH).code, PriorityCode.P1)
        self.assertEqual(calc.calculate(UrgencyLevel.MEDIUM, ImpactLevel.MEDIUM).code, PriorityCode.P2)
        self.assertEqual(calc.calculate(UrgencyLevel.LOW, ImpactLevel.LOW).code, PriorityCode.P4)


class TestFailSafe(unittest.TestCase):
    def test_invalid_inputs_return_lowest_priority(self):
        calc = PriorityCalculator()
        for urgency, impact in [
            (None, 50),
            ("urgent", 50),
            (UrgencyLevel.HIGH, None),
            (UrgencyLevel.HIGH, 0),
            (UrgencyLevel.HIGH, -4),
            (UrgencyLevel.HIGH, ImpactLevel.HIGH),
        ]:
            with self.subTest(urgency=urgency, impact=impact):
                result = calc.calculate(urgency, impact)
                self.assertEqual(result.code, PriorityCode.P4)
                self.assertFalse(result.inputs_valid)

    def test_invalid_inputs_ignore_override(self):
        calc = PriorityCalculator()
        with self.assertLogs("src.opprime.priority", level="WARNING"):
            result = calc.calculate(None, 50, override="P1")
        self.assertEqual(result.code, PriorityCode.P4)

    def test_user_count_value_rejected_by_impact_level_scheme(self):
        calc = PriorityCalculator(matrix=PriorityMatrix.impact_level_default())
        self.assertEqual(calc.calculate(UrgencyLevel.HIGH, 5000).code, PriorityCode.P4)


class TestOverrides(unittest.TestCase):
    def test_explicit_override_dominates_every_cell(self):
        calc = PriorityCalculator()
        for urgency in UrgencyLevel:
            for users in (5, 5000):
                result = calc.calculate(urgency, users, override="P2")
                self.assertEqual(result.code, PriorityCode.P2)
                self.assertEqual(result.matrix_code, calc.calculate(urgency, users).code)
                self.assertTrue(result.overridden)

    def test_empty_override_is_ignored(self):
        calc = PriorityCalculator()
        result = calc.calculate(UrgencyLevel.LOW, 5, override="   ")
        self.assertEqual(result.source, "matrix")

    def test_unrecognised_override_is_reported_not_applied(self):
        calc = PriorityCalculator()
        result = calc.calculate(UrgencyLevel.LOW, 5, override="critical")
        self.assertEqual(result.code, PriorityCode.P4)
        self.assertEqual(result.rejected_override, "critical")

    def test_rule_override_and_tie_breaking(self):
        calc = PriorityCalculator(
            rules=(
                PriorityOverrideRule("r2", frozenset({"security"}), PriorityCode.P2, precedence=5),
                PriorityOverrideRule("r1", frozenset({"security"}), PriorityCode.P1, precedence=5),
                PriorityOverrideRule("r0", frozenset({"security", "vip"}), PriorityCode.P1, precedence=9),
            )
        )
        result = calc.calculate(UrgencyLevel.LOW, 5, tags={"security"})
        self.assertEqual(result.code, PriorityCode.P1)
        self.assertEqual(result.source, "rule:r1")
        self.assertEqual(result.fired_rule_ids, ("r1", "r2"))
        self.assertEqual(result.matrix_code, PriorityCode.P4)

    def test_explicit_override_beats_rules(self):
        calc = PriorityCalculator(rules=(PriorityOverrideRule("sec", frozenset({"security"}), PriorityCode.P1),))
        result = calc.calculate(UrgencyLevel.LOW, 5, override=PriorityCode.P3, tags={"security"})
        self.assertEqual(result.code, PriorityCode.P3)
        self.assertEqual(result.source, "override")


class TestMatrixShape(unittest.TestCase):
    def test_mismatched_row_length_rejected(self):
        matrix = PriorityMatrix(
            scheme=ImpactScheme.USER_COUNT,
            rows={
                UrgencyLevel.HIGH: (PriorityCode.P1, PriorityCode.P1, PriorityCode.P2),
                UrgencyLevel.MEDIUM: (PriorityCode.P1, PriorityCode.P2, PriorityCode.P3),
                UrgencyLevel.LOW: (PriorityCode.P2, PriorityCode.P3, PriorityCode.P4),
            },
        )
        with self.assertRaises(PriorityMatrixError):
            PriorityCalculator(matrix=matrix)

    def test_default_for_scheme(self):
        self.assertEqual(PriorityMatrix.default_for(ImpactScheme.IMPACT_LEVEL).bucket_count, 3)
        self.assertEqual(PriorityMatrix.default_for(ImpactScheme.USER_COUNT).bucket_count, 5)


if __name__ == "__main__":
    unittest.main()
