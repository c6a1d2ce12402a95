import unittest

from src.opprime.catalog import ImpactScheme, PriorityCode, UrgencyLevel
from src.opprime.contracts import CONTRACT_VERSIONS, validate_contract_freeze
from src.opprime.priority import PriorityMatrix


class TestContractsFreeze(unittest.TestCase):
    def test_contract_versions_are_frozen(self):
        self.assertEqual(
            CONTRACT_VERSIONS,
            {
                "session_schema": "v1",
                "record_schema": "v1",
                "transition_table": "v1",
                "priority_matrix": "v1",
            },
        )

    def test_contract_validation_passes(self):
        result = validate_contract_freeze()
        self.assertTrue(result.is_valid)
        self.assertEqual(result.errors, [])

    def test_malformed_matrix_is_reported(self):
        matrix = PriorityMatrix(
            scheme=ImpactScheme.IMPACT_LEVEL,
            rows={u: (PriorityCode.P1,) for u in UrgencyLevel},
        )
        result = validate_contract_freeze(matrix)
        self.assertFalse(result.is_valid)
        self.assertTrue(result.errors[0].startswith("priority_matrix_shape:"))


if __name__ == "__main__":
    unittest.main()
