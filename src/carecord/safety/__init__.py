"""
Safety decision core for carecord.

Data flows leaf to root through the modules of this package:

    message -> policy_gate -> pattern_matcher -> [classification_adapter]
            -> severity_resolver -> decision_engine -> escalation_dispatcher

``safety_pipeline`` wires the stages together; ``behavior_tracker`` feeds the
moderation branch with per-user spam statistics.
"""
