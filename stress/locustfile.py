"""Locust profile for mixed share/redirect/admin traffic.

Each simulated user mints its own bearer token with ``JWT_SECRET`` and keeps
an in-user pool of short identifiers, so redirect traffic targets links that
exist. Referrer and User-Agent headers alternate to spread clicks across the
analytics maps.

    locust -f stress/locustfile.py --host http://localhost:8000
"""

import random
import uuid

import jwt
from locust import HttpUser, between, task

from sharelinks.config import get_settings

MAX_IDS_PER_USER = 200
REFERRERS = [None, "https://twitter.com", "https://news.ycombinator.com"]
USER_AGENTS = [
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64)",
]


def _bearer(sub: str, role: str = "user") -> dict[str, str]:
    settings = get_settings()
    token = jwt.encode({"sub": sub, "role": role}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


class ShareLinkUser(HttpUser):
    """Mixed workload user: mostly redirects, some creation, a few admin reads."""

    wait_time = between(0.1, 0.5)

    def on_start(self) -> None:
        self.short_ids: list[str] = []
        self.headers = _bearer(f"load-{uuid.uuid4().hex[:8]}")
        self.admin_headers = _bearer("load-admin", role="admin")

    @task(2)
    def create_share_link(self) -> None:
        payload = {"url": f"https://example.com/page/{random.randint(1, 1000000)}", "appId": "load-test"}
        response = self.client.post("/share", json=payload, headers=self.headers, name="POST /share")

        if response.status_code == 201:
            self.short_ids.append(response.json()["shortId"])
            if len(self.short_ids) > MAX_IDS_PER_USER:
                self.short_ids = self.short_ids[-MAX_IDS_PER_USER:]

    @task(8)
    def redirect(self) -> None:
        if not self.short_ids:
            self.create_share_link()
            return

        headers = {"User-Agent": random.choice(USER_AGENTS)}
        referrer = random.choice(REFERRERS)
        if referrer:
            headers["Referer"] = referrer
        self.client.get(
            f"/s/{random.choice(self.short_ids)}", headers=headers, name="GET /s/:shortId", allow_redirects=False
        )

    @task(1)
    def admin_top(self) -> None:
        self.client.get("/admin/shares/top", headers=self.admin_headers, name="GET /admin/shares/top")
