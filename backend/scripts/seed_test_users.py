"""
Rutero - Seed Test Users (dev/staging only)
Crea un equipo de prueba con credenciales predecibles: un Administrador,
un Supervisor con dos vendedores y un Telemercaderista.
Run: cd backend && python scripts/seed_test_users.py
Reset: python scripts/seed_test_users.py --reset
"""

import asyncio
import sys
import uuid
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import client, db, hash_password, now_iso  # noqa: E402
from services.permissions import get_preset_permissions  # noqa: E402

# Misma contraseña para todas las cuentas de prueba
TEST_PASSWORD = "Rutero2024!"

TEST_USERS = [
    {"email": "admin@test.local",       "name": "Admin Rutero",       "role": "Administrador"},
    {"email": "supervisor@test.local",  "name": "Carla Supervisora",  "role": "Supervisor"},
    {"email": "vendedor1@test.local",   "name": "Juan Pérez",         "role": "Usuario", "supervisor": "supervisor@test.local"},
    {"email": "vendedor2@test.local",   "name": "Ana Vera",           "role": "Usuario", "supervisor": "supervisor@test.local"},
    {"email": "telemarketing@test.local", "name": "Luis Mora",        "role": "Telemercaderista"},
]


async def reset(db):
    """Borra los usuarios @test.local y sus sesiones"""
    users = await db.users.find({"email": {"$regex": "@test\\.local$"}}, {"_id": 0, "id": 1}).to_list(100)
    ids = [u["id"] for u in users]
    result = await db.users.delete_many({"id": {"$in": ids}})
    await db.sessions.delete_many({"user_id": {"$in": ids}})
    print(f"Deleted {result.deleted_count} test users")


async def seed(db):
    """Crea o actualiza los usuarios de prueba (supervisores primero)"""
    ids_by_email = {}
    for u in TEST_USERS:
        existing = await db.users.find_one({"email": u["email"]}, {"_id": 0, "id": 1})
        doc = {
            "email": u["email"],
            "password": hash_password(TEST_PASSWORD),
            "name": u["name"],
            "role": u["role"],
            "supervisor_id": ids_by_email.get(u.get("supervisor")),
            "permissions": get_preset_permissions(u["role"]),
            "status": "active",
            "failed_login_attempts": 0,
        }
        if existing:
            await db.users.update_one({"email": u["email"]}, {"$set": doc})
            ids_by_email[u["email"]] = existing["id"]
            print(f"  Updated: {u['email']} ({u['role']})")
        else:
            doc["id"] = str(uuid.uuid4())
            doc["created_at"] = now_iso()
            await db.users.insert_one(doc)
            ids_by_email[u["email"]] = doc["id"]
            print(f"  Created: {u['email']} ({u['role']})")


async def main():
    if "--reset" in sys.argv:
        await reset(db)
        print("Reset complete. Run without --reset to re-seed.")
    else:
        await reset(db)
        await seed(db)
        print(f"\n{len(TEST_USERS)} test users seeded. Password for all: {TEST_PASSWORD}")
        print("Reset: python scripts/seed_test_users.py --reset")

    client.close()


if __name__ == "__main__":
    asyncio.run(main())
