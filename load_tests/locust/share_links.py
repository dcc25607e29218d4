from locust import HttpUser, between, task
import os

AUTH_TOKEN = os.environ.get("AUTH_TOKEN")
SHARE_TOKEN = os.environ.get("SHARE_TOKEN")
SHARED_FILE = os.environ.get("SHARED_FILE", "a.txt")


def _headers(extra=None):
    headers = {}
    if AUTH_TOKEN:
        headers["Authorization"] = f"Bearer {AUTH_TOKEN}"
    if extra:
        headers.update(extra)
    return headers


class ShareLinkUser(HttpUser):
    wait_time = between(0.5, 2.0)

    @task(3)
    def list_shared(self):
        if SHARE_TOKEN:
            self.client.get("/api/files", params={"share": SHARE_TOKEN}, name="/api/files?share")

    @task(2)
    def download_shared(self):
        if SHARE_TOKEN:
            self.client.get(
                f"/api/download/{SHARED_FILE}",
                headers={"X-Share-Token": SHARE_TOKEN},
                name="/api/download/[shared]",
            )

    @task(1)
    def owner_space(self):
        self.client.get("/api/space", headers=_headers())
