#!/usr/bin/env python3
"""Demo: register channels for a student and send them a notification.

Requires the gateway, PostgreSQL (migrated) and the two user ids below to
exist. Pass ids of seeded users with --teacher-id / --student-id.

Usage:
    python scripts/demo.py --teacher-id UUID --student-id UUID [--gateway-url URL]
"""

import argparse
import sys

import httpx

CHANNELS = [
    {"kind": "email", "address": "student@example.com"},
    {"kind": "webhook", "address": "https://example.com/webhook"},
    {"kind": "sms", "address": "+15005550006"},
]

NOTIFICATION = {
    "title": "Exam rescheduled",
    "message": "The biology exam moved to Monday 9:00.",
    "category": "announcement",
    "context": {"course": "Biology 101", "room": "B12"},
}


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a demo notification")
    parser.add_argument(
        "--gateway-url",
        default="http://localhost:8000",
        help="API gateway base URL (default: http://localhost:8000)",
    )
    parser.add_argument("--teacher-id", required=True)
    parser.add_argument("--student-id", required=True)
    args = parser.parse_args()

    teacher = {"X-User-Id": args.teacher_id, "X-User-Role": "teacher"}
    student = {"X-User-Id": args.student_id, "X-User-Role": "student"}

    with httpx.Client(base_url=args.gateway_url, timeout=30.0) as client:
        try:
            resp = client.get("/health")
        except httpx.ConnectError:
            print(f"Cannot connect to {args.gateway_url}")
            sys.exit(1)

        if resp.status_code != 200:
            print(f"Gateway unhealthy: {resp.text}")
            sys.exit(1)

        print(f"Gateway healthy at {args.gateway_url}\n")

        for channel in CHANNELS:
            resp = client.post("/notifications/channels", json=channel, headers=student)
            label = f"{channel['kind']:8s} {channel['address']}"
            if resp.status_code == 201:
                print(f"  channel {label}  -> created")
            else:
                print(f"  channel {label}  -> {resp.status_code}: {resp.json()}")

        resp = client.post(
            "/notifications",
            json={**NOTIFICATION, "recipient_id": args.student_id},
            headers=teacher,
        )
        if resp.status_code != 201:
            print(f"\nNotification rejected {resp.status_code}: {resp.json()}")
            sys.exit(1)

        body = resp.json()
        print(f"\nNotification {body['id']} -> {body['status']}")
        for delivery in body["deliveries"]:
            error = delivery["error_message"] or ""
            print(
                f"  {delivery['channel_kind']:8s} {delivery['status']:10s} {error}"
            )


if __name__ == "__main__":
    main()
