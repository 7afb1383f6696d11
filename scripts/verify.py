import httpx
import asyncio
import os
import uuid

BASE_URL = os.environ.get("LINKSNAP_URL", "http://localhost:8000")

async def run_verification():
    print(f"🚀  Starting Verification against {BASE_URL}...\n")

    owner = {"X-Owner-Id": "verifier"}

    async with httpx.AsyncClient(base_url=BASE_URL, timeout=10.0) as client:
        # 1. Health Check
        print("1. [Health] Checking /health...")
        try:
            resp = await client.get("/health")
            if resp.status_code == 200 and resp.json().get("status") == "healthy":
                print(f"   ✅  Health Check Passed (uptime {resp.json()['uptime']:.0f}s)")
            else:
                print(f"   ❌  Health Check Failed: {resp.text}")
                return
        except httpx.HTTPError as e:
            print(f"   ❌  Connection Error: {e}")
            return

        # 2. Create Link
        print("\n2. [API] Creating Short Link...")
        long_url = "https://www.example.com/verify?run=1"
        alias = f"verify-{uuid.uuid4().hex[:8]}"
        payload = {"originalUrl": long_url, "customAlias": alias, "expiresIn": 1}

        resp = await client.post("/api/shorten", json=payload, headers=owner)
        if resp.status_code == 201:
            data = resp.json()
            print(f"   ✅  Created: {data['shortUrl']} (expires {data['expiresAt']})")
        else:
            print(f"   ❌  Create Failed: {resp.status_code} {resp.text}")
            return

        # 3. Alias Collision
        print("\n3. [API] Verifying alias uniqueness...")
        resp = await client.post("/api/shorten", json=payload, headers=owner)
        if resp.status_code == 400:
            print(f"   ✅  Duplicate alias rejected: {resp.json()['detail']}")
        else:
            print(f"   ❌  Duplicate alias accepted: {resp.status_code}")

        # 4. Verify Redirect
        print("\n4. [API] Verifying Redirect...")
        resp = await client.get(f"/{alias}", follow_redirects=False)
        if resp.status_code == 301 and resp.headers.get("location") == long_url:
            print(f"   ✅  Redirect Location matches: {resp.headers['location']}")
        else:
            print(f"   ❌  Redirect Failed: {resp.status_code} {resp.headers.get('location')}")

        # 5. Verify Analytics
        print("\n5. [API] Verifying Analytics...")
        await asyncio.sleep(0.5)
        resp = await client.get(f"/api/analytics/{alias}", headers=owner)
        if resp.status_code == 200:
            data = resp.json()
            if data["totalClicks"] > 0:
                print(f"   ✅  Click recorded: {data['totalClicks']} over {data['activeDays']} day(s)")
            else:
                print(f"   ⚠️  Click not recorded yet (background worker might be slow): {data}")
        else:
            print(f"   ❌  Analytics Failed: {resp.status_code}")

        # 6. Missing code
        print("\n6. [API] Verifying 404 for unknown code...")
        resp = await client.get(f"/missing-{uuid.uuid4().hex[:8]}", follow_redirects=False)
        if resp.status_code == 404:
            print("   ✅  Unknown code returns 404")
        else:
            print(f"   ❌  Unexpected status: {resp.status_code}")

        # 7. Metrics
        print("\n7. [Observability] Verifying Metrics...")
        resp = await client.get("/metrics")
        if resp.status_code == 200 and "redirect_total" in resp.text:
            print("   ✅  Metrics Endpoint Exposed")
        else:
            print(f"   ❌  Metrics Failed: {resp.status_code}")

    print("\n✨ Verification Complete!")

if __name__ == "__main__":
    asyncio.run(run_verification())
