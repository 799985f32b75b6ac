"""
Locust Load Test Suite

Shows are owned by the catalog service; point the run at an existing one:
  SHOW_ID=<show id> locust -f locustfile.py --host http://localhost:8001

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double booking
  locust -f locustfile.py --tags holds        # Test hold contention
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
import uuid
from locust import HttpUser, task, between, tag, events

SHOW_ID = os.environ.get("SHOW_ID", "")

# Shared state
SEAT_IDS = []
CONTESTED_SEATS = []
WINNERS = {}  # seat id -> booking id


def new_user_id():
    return f"load_{uuid.uuid4().hex[:12]}"


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: Load the show's seats and pick the contested ones."""
    print("\n" + "="*60)
    print(f"SETUP: Loading seats for show {SHOW_ID or '<SHOW_ID not set>'}...")
    print("="*60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Each contested seat must have at most one winning booking."""
    print("\n" + "="*60)
    print(f"RESULT: {len(WINNERS)} contested seat(s) booked")
    for seat_id, booking_ids in WINNERS.items():
        status = "OK" if len(booking_ids) <= 1 else "DOUBLE BOOKED"
        print(f"  {seat_id}: {len(booking_ids)} booking(s) [{status}]")
    print("="*60)


def load_seats(client):
    if SEAT_IDS or not SHOW_ID:
        return
    resp = client.get(f"/api/v1/shows/{SHOW_ID}/seats", name="/api/v1/shows/{id}/seats")
    if resp.status_code == 200:
        seats = resp.json()["seats"]
        SEAT_IDS.extend(seat["id"] for seat in seats)
        # Everyone fights over the first 5 seats
        CONTESTED_SEATS.extend(SEAT_IDS[:5])


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many users -> the same 5 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT show_seat_id, COUNT(*) FROM booking_seats bs
        JOIN bookings b ON b.id = bs.booking_id
       WHERE b.status IN ('PENDING', 'CONFIRMED')
       GROUP BY show_seat_id HAVING COUNT(*) > 1;
    Should return no rows
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.user_id = new_user_id()
        load_seats(self.client)

    @tag("concurrency")
    @task
    def book_contested_seat(self):
        """All users fight for the same seats."""
        if not CONTESTED_SEATS:
            return

        seat_id = random.choice(CONTESTED_SEATS)
        with self.client.post("/api/v1/bookings",
            json={"userId": self.user_id, "showId": SHOW_ID, "seatIds": [seat_id]},
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                WINNERS.setdefault(seat_id, []).append(resp.json()["bookingId"])
                resp.success()
            elif resp.status_code == 400 and "already" in resp.json().get("detail", ""):
                resp.success()  # Expected: lost the race
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class HoldUser(HttpUser):
    """
    TEST 2: Hold contention

    Run: locust -f locustfile.py --tags holds -u 50 -r 10 --run-time 60s

    Users hold seats, then either book them or release them.
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.user_id = new_user_id()
        load_seats(self.client)

    @tag("holds")
    @task(3)
    def hold_and_release(self):
        if not SEAT_IDS:
            return
        seats = random.sample(SEAT_IDS, k=min(2, len(SEAT_IDS)))
        with self.client.post("/api/v1/bookings/hold-seats",
            json={"userId": self.user_id, "showId": SHOW_ID, "seatIds": seats},
            catch_response=True
        ) as resp:
            if resp.status_code in [200, 400]:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")
        self.client.delete(f"/api/v1/bookings/holds/{self.user_id}",
            name="/api/v1/bookings/holds/{userId}")

    @tag("holds", "read")
    @task(1)
    def view_availability(self):
        if SHOW_ID:
            self.client.get(f"/api/v1/shows/{SHOW_ID}/seats", name="/api/v1/shows/{id}/seats")

    @tag("holds")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.user_id = new_user_id()

    @tag("edge")
    @task
    def unknown_show(self):
        """Book a non-existent show."""
        with self.client.post("/api/v1/bookings",
            json={"userId": self.user_id, "showId": str(uuid.uuid4()), "seatIds": ["nope"]},
            catch_response=True
        ) as resp:
            if resp.status_code in [404, 400]:
                resp.success()
            else:
                resp.failure(f"Expected 404/400, got {resp.status_code}")

    @tag("edge")
    @task
    def no_seats(self):
        """Try to book zero seats."""
        with self.client.post("/api/v1/bookings",
            json={"userId": self.user_id, "showId": SHOW_ID or "x", "seatIds": []},
            catch_response=True
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/bookings",
            data="not json at all",
            headers={"Content-Type": "application/json"},
            catch_response=True
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def unsigned_webhook(self):
        """Webhook without a signature must be rejected."""
        with self.client.post("/api/v1/payments/webhook",
            data='{"eventType":"payment.success","sessionId":"ps_fake"}',
            headers={"Content-Type": "application/json"},
            catch_response=True
        ) as resp:
            if resp.status_code == 403:
                resp.success()
            else:
                resp.failure(f"Expected 403, got {resp.status_code}")
