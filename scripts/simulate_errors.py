# Folder: pulse/scripts/simulate_errors.py
# Fires a burst of server errors at /errors to trip the alert rules.
# Run with: python scripts/simulate_errors.py [database|critical|auth|api]

import sys
import requests

BASE_URL = "http://127.0.0.1:8001"

BURSTS = {
    # kind: (how many, error report)
    "database": (5, {
        "message": "Database connection refused",
        "category": "database",
        "severity": "high",
    }),
    "critical": (1, {
        "message": "Fatal: worker crashed while flushing",
        "category": "system",
        "severity": "critical",
    }),
    "auth": (10, {
        "message": "Unauthorized token",
        "category": "authentication",
        "severity": "medium",
        "endpoint": "/api/admin",
    }),
    "api": (20, {
        "message": "Upstream timeout",
        "category": "api",
        "severity": "medium",
        "endpoint": "/api/analytics",
        "status_code": 504,
    }),
}


def simulate(kind: str):
    count, report = BURSTS[kind]
    print("\n" + "=" * 50)
    print(f"💥 SENDING {count} x {kind.upper()} ERRORS")
    print("=" * 50)

    for i in range(count):
        response = requests.post(f"{BASE_URL}/errors", json=report, timeout=5)
        alert = response.json().get("alert")
        if alert:
            print(f"🚨 #{i + 1} fired {alert['rule_id']}: {alert['message']}")
        else:
            print(f"✓ #{i + 1} logged")


if __name__ == "__main__":
    kind = sys.argv[1] if len(sys.argv) > 1 else "database"
    if kind not in BURSTS:
        print(f"Unknown burst {kind!r}, pick one of: {', '.join(BURSTS)}")
        sys.exit(1)
    simulate(kind)
