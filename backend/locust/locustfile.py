"""
Locust Load Test Suite

Seed one event and a block of users first, then point the run at them:

  EVENT_ID=1 USER_ID_MIN=1 USER_ID_MAX=5000 locust -f locustfile.py

Run scenarios:
  locust -f locustfile.py --tags burst      # Sign-up burst on one event
  locust -f locustfile.py --tags read       # Status polling while resolving
  locust -f locustfile.py --tags edge       # Bad input
  locust -f locustfile.py                   # All tests
"""

import os
import random
from locust import HttpUser, task, between, tag, events

EVENT_ID = int(os.getenv("EVENT_ID", "1"))
USER_ID_MIN = int(os.getenv("USER_ID_MIN", "1"))
USER_ID_MAX = int(os.getenv("USER_ID_MAX", "5000"))

# Users that already signed up in this run
SIGNED_UP = []


def next_user_id():
    return random.randint(USER_ID_MIN, USER_ID_MAX)


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Sign-up burst against event {EVENT_ID}, users {USER_ID_MIN}..{USER_ID_MAX}")
    print("=" * 60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Force one pass so the final counts can be checked right away."""
    if environment.host:
        import requests

        resp = requests.post(f"{environment.host}/api/v1/events/{EVENT_ID}/resolve", timeout=30)
        print(f"\nFinal resolve: {resp.status_code} {resp.text}\n")


class BurstUser(HttpUser):
    """
    TEST 1: Sign-up burst - many users, one event

    Run: locust -f locustfile.py --tags burst -u 500 -r 200 --run-time 30s

    After test, verify:
      SELECT status, COUNT(*) FROM event_registrations WHERE event_id = X GROUP BY status;
    registered must be <= capacity, and waitlist positions must be 1..k:
      SELECT COUNT(*), MIN(waitlist_position), MAX(waitlist_position)
      FROM event_registrations WHERE event_id = X AND status = 'waitlisted';
    """
    wait_time = between(0, 0.1)

    @tag("burst")
    @task
    def sign_up(self):
        user_id = next_user_id()
        with self.client.post(
            f"/api/v1/events/{EVENT_ID}/registrations",
            json={"user_id": user_id},
            name="/api/v1/events/{id}/registrations",
            catch_response=True,
        ) as resp:
            if resp.status_code == 202:
                SIGNED_UP.append(user_id)
                resp.success()
            elif resp.status_code == 200:
                resp.success()  # Expected: already signed up
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class PollingUser(HttpUser):
    """
    TEST 2: Status polling while the scheduler resolves

    Run: locust -f locustfile.py --tags read -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.2, 1)

    @tag("read")
    @task(5)
    def poll_own_status(self):
        if SIGNED_UP:
            user_id = random.choice(SIGNED_UP)
            self.client.get(
                f"/api/v1/events/{EVENT_ID}/registrations/{user_id}",
                name="/api/v1/events/{id}/registrations/{user_id}",
            )

    @tag("read")
    @task(2)
    def event_counts(self):
        self.client.get(f"/api/v1/events/{EVENT_ID}", name="/api/v1/events/{id}")

    @tag("read")
    @task(1)
    def waitlist(self):
        self.client.get(
            f"/api/v1/events/{EVENT_ID}/registrations?status=waitlisted",
            name="/api/v1/events/{id}/registrations?status=waitlisted",
        )

    @tag("read")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post(
            "/api/v1/events/999999/registrations",
            json={"user_id": next_user_id()},
            catch_response=True,
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_user_id(self):
        with self.client.post(
            f"/api/v1/events/{EVENT_ID}/registrations",
            json={"user_id": -5},
            catch_response=True,
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            f"/api/v1/events/{EVENT_ID}/registrations",
            data="not json at all",
            catch_response=True,
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def resolve_while_busy(self):
        """Manual passes racing the scheduler get 409, never a double seat."""
        with self.client.post(
            f"/api/v1/events/{EVENT_ID}/resolve",
            catch_response=True,
        ) as resp:
            if resp.status_code in [200, 409]:
                resp.success()
            else:
                resp.failure(f"Expected 200/409, got {resp.status_code}")
