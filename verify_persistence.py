import time
import subprocess
import httpx
import sys
import os
import signal
import uuid

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
# Seeded with `python -m welfare_admin.seed_rbac <phone>`; requires static OTP mode
ADMIN_PHONE = os.getenv("SEED_ADMIN_PHONE", "9999999999")
STATIC_OTP = os.getenv("STATIC_OTP", "123456")


def start_server():
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "welfare_admin.app.main:app", "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


def stop_server(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print(f"✅ Server is up! ({resp.json()['status']})")
                return True
        except httpx.ConnectError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def login():
    resp = httpx.post(f"{BASE_URL}{API_PREFIX}/auth/send-otp", json={"phone": ADMIN_PHONE, "purpose": "login"})
    if resp.status_code == 429:
        print(f"⚠️ OTP send throttled, retry after {resp.json().get('details', {}).get('retry_after')}s")
    elif resp.status_code != 200:
        raise RuntimeError(f"send-otp failed: {resp.status_code} {resp.text}")

    resp = httpx.post(
        f"{BASE_URL}{API_PREFIX}/auth/verify-otp",
        json={"phone": ADMIN_PHONE, "otp": STATIC_OTP, "purpose": "login"},
    )
    if resp.status_code != 200:
        raise RuntimeError(f"verify-otp failed: {resp.status_code} {resp.text}")
    return resp.json()["data"]["access_token"]


def run_verification():
    marker = f"persistence-check-{uuid.uuid4().hex[:8]}"

    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server()
    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stderr:", server_logs[1].decode())
            raise RuntimeError("Server start failed")

        print("\n--- [Step 2] Logging in and writing website settings ---")
        token = login()
        resp = httpx.put(
            f"{BASE_URL}{API_PREFIX}/website/settings",
            json={"about_us": marker},
            headers={"Authorization": f"Bearer {token}"},
        )
        if resp.status_code != 200:
            raise RuntimeError(f"Settings update failed: {resp.status_code} {resp.text}")
        print(f"✅ Wrote about_us = {marker}")
    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = start_server()
    try:
        if not wait_for_server():
            raise RuntimeError("Server restart failed")

        print("\n--- [Step 5] Reading public settings (Post-Restart) ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/website/public-settings")
        about = resp.json()["data"]["about_us"]
        if about == marker:
            print("✅ Settings persisted across restart")
        else:
            print(f"❌ Expected {marker!r}, got {about!r}")
            raise RuntimeError("Persistence check failed")
    finally:
        print("\n--- [Step 6] Stopping Server ---")
        stop_server(proc2)


if __name__ == "__main__":
    run_verification()
