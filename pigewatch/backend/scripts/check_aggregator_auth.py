# scripts/check_aggregator_auth.py
import asyncio
import os

import httpx

from app.config import settings


async def main():
    key = settings.AGGREGATOR_API_KEY
    print("Key set:", bool(key), "len:", len(key) if key else None)
    body = {"apiKey": key or "", "page": 1, "maxLength": 1, "types": ["sale"], "locations": [{"postalCode": os.getenv("POSTAL_CODE", "75011")}]}
    async with httpx.AsyncClient(timeout=30) as client:
        r = await client.post(f"{settings.AGGREGATOR_BASE_URL.rstrip('/')}/api/ads", json=body)
        print("Status:", r.status_code)
        print("Body head:", r.text[:300])


asyncio.run(main())
