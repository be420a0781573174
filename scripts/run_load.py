# Folder: pulse/scripts/run_load.py
# Generates continuous realistic visitor traffic against /ingest.
# Run this to build up data before asking for metrics.
# Run with: python scripts/run_load.py

import requests
import time
import random
import uuid
from datetime import datetime, timezone

BASE_URL = "http://127.0.0.1:8001"

# 50 returning visitors, each with a stable anonymous id
VISITOR_POOL = [str(uuid.uuid4()) for _ in range(50)]

PAGES = ["/", "/beta", "/docs", "/pricing", "/blog", "/about"]
REFERRERS = [None, None, "https://www.google.com/search?q=pulse",
             "https://news.ycombinator.com/item?id=1", "https://twitter.com/x"]
RESOLUTIONS = ["1920x1080", "1440x900", "390x844", "2560x1440"]
TIMEZONES = [-8, -5, 0, 1, 2, 5.5, 9]
CAMPAIGNS = [None, None, "launch", "newsletter"]

sent = 0
start_time = time.time()


def send(events):
    global sent
    try:
        response = requests.post(f"{BASE_URL}/ingest", json=events, timeout=5)
        if response.status_code == 200:
            sent += len(events)
        else:
            print(f"⚠️  ingest returned {response.status_code}: {response.text[:200]}")
    except requests.RequestException as e:
        print(f"🚨 ingest failed: {e}")


def visit(visitor_id: str) -> list:
    """One browsing session: 1-6 page views, sometimes a signup at the end"""
    session_id = f"sess-{uuid.uuid4().hex[:12]}"
    campaign = random.choice(CAMPAIGNS)
    metadata = {
        "screenResolution": random.choice(RESOLUTIONS),
        "timezone": random.choice(TIMEZONES),
    }
    if campaign:
        metadata["utmParams"] = {"utm_campaign": campaign, "utm_source": "load"}

    events = []
    referrer = random.choice(REFERRERS)
    for i in range(random.randint(1, 6)):
        events.append({
            "page_path": random.choice(PAGES),
            "visitor_id": visitor_id,
            "session_id": session_id,
            "event_type": "page_view",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "referrer": referrer if i == 0 else None,
            "metadata": metadata,
        })

    if random.random() < 0.1:
        events.append({
            "page_path": "/beta",
            "visitor_id": visitor_id,
            "session_id": session_id,
            "event_type": "beta_signup",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metadata": metadata,
        })
    return events


batch_counter = 0
while True:
    send(visit(random.choice(VISITOR_POOL)))

    batch_counter += 1
    if batch_counter % 50 == 0:
        runtime = time.time() - start_time
        print(f"Runtime: {runtime:.0f}s | Events sent: {sent}")

    time.sleep(random.uniform(0.05, 0.3))
