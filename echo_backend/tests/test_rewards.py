import unittest

from echo_backend.rewards import reward_for


class RewardPolicyTests(unittest.TestCase):
    def test_priorities(self):
        self.assertEqual(reward_for("high"), 10)
        self.assertEqual(reward_for("medium"), 5)
        self.assertEqual(reward_for("low"), 2)

    def test_unset_or_unknown_priority_pays_medium(self):
        self.assertEqual(reward_for(None), 5)
        self.assertEqual(reward_for(""), 5)
        self.assertEqual(reward_for("urgent"), 5)


if __name__ == "__main__":
    unittest.main()
