"""
Rutero - API Backend
Planificación y ejecución de rutas de visita para la fuerza de ventas.

Arranque:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

import os
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import db, client, SCHEDULER_ENABLED

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("rutero")

# Créer l'app
app = FastAPI(
    title="Rutero",
    description="Rutas de visita, aprobación, ejecución diaria y KPIs de ventas",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== ROUTERS ====================

from routes import auth, clients, route_plans, visits, predictions, notifications, crm, reports

# Routers con prefijo /api
app.include_router(auth.router, prefix="/api")
app.include_router(clients.router, prefix="/api")
app.include_router(route_plans.router, prefix="/api")
app.include_router(visits.router, prefix="/api")
app.include_router(predictions.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
app.include_router(crm.router, prefix="/api")
app.include_router(reports.router, prefix="/api")


# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    return {
        "name": "Rutero API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP / SHUTDOWN ====================

@app.on_event("startup")
async def startup():
    logger.info("Rutero API iniciada")

    await db.users.create_index("email", unique=True)
    await db.sessions.create_index("token")
    await db.sessions.create_index("expires_at")
    await db.clients.create_index("ruc", unique=True)
    await db.clients.create_index("ejecutivo")
    await db.routes.create_index("id", unique=True)
    await db.routes.create_index("created_by")
    await db.routes.create_index("supervisor_id")
    await db.routes.create_index("status")
    await db.notifications.create_index([("user_id", 1), ("created_at", -1)])
    await db.customers.create_index("agent_id")
    await db.calls.create_index("customer_id")
    await db.event_log.create_index("entity_id")

    logger.info("Índices MongoDB creados")

    if SCHEDULER_ENABLED:
        from scheduler_service import task_scheduler
        task_scheduler.start()


@app.on_event("shutdown")
async def shutdown():
    if SCHEDULER_ENABLED:
        from scheduler_service import task_scheduler
        task_scheduler.stop()
    client.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
