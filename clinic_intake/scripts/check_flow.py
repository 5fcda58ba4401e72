"""
Flow Checker.

Run this script to structurally validate the intake flow defined in
data/intake_flow.py: dangling next edges, unreachable steps, missing
error messages, option steps without options, unknown milestones and
auto-advance loops.

Usage:
    python -m clinic_intake.scripts.check_flow

Exits non-zero when the flow has configuration errors.
"""

import sys

from clinic_intake.data.intake_flow import FIELD_BINDINGS, INTAKE_FLOW, MILESTONES
from clinic_intake.execution.checks import check_flow


def main() -> int:
    print(f"Checking flow '{INTAKE_FLOW.name}' ({len(INTAKE_FLOW.steps)} steps, entry '{INTAKE_FLOW.entry}')...")

    issues = check_flow(INTAKE_FLOW, FIELD_BINDINGS, MILESTONES)
    if not issues:
        print("Flow OK.")
        return 0

    print(f"Found {len(issues)} issue(s):")
    for issue in issues:
        print(f"--> {issue}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
