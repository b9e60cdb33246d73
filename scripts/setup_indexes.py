import sys
import os
import asyncio

# Add parent directory to path to import database
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import ensure_indexes, sessions_collection, offline_notifications_collection


async def create_indexes():
    print("🚀 Starting Index Creation...")
    if not await ensure_indexes():
        print("❌ Index creation failed, see logs")
        return

    for name, collection in (("user_sessions", sessions_collection), ("offline_notifications", offline_notifications_collection)):
        print(f"\n📦 {name}:")
        async for index in collection.list_indexes():
            print(f"✅ {index['name']} {dict(index['key'])}" + (f" ttl={index['expireAfterSeconds']}s" if "expireAfterSeconds" in index else ""))


if __name__ == "__main__":
    asyncio.run(create_indexes())
