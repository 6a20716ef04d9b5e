"""
Scheduler de tareas automáticas de Rutero
- Barrido de rutas vencidas cada hora
- Limpieza de sesiones expiradas cada noche
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from config import db, now_iso, APP_TIMEZONE

logger = logging.getLogger("scheduler")


class TaskScheduler:
    """Gestor de tareas programadas"""

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone=APP_TIMEZONE)

    def start(self):
        """Arranca el scheduler con todas las tareas"""
        # Barrido de expiración cada hora (minuto 5)
        self.scheduler.add_job(
            self.sweep_expired_routes,
            CronTrigger(minute=5),
            id="expiration_sweep",
            name="Cierre de rutas vencidas",
            replace_existing=True
        )

        # Sesiones vencidas a las 3h
        self.scheduler.add_job(
            self.purge_sessions,
            CronTrigger(hour=3, minute=0),
            id="purge_sessions",
            name="Limpieza de sesiones",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info("Scheduler iniciado")

    def stop(self):
        """Detiene el scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler detenido")

    # ==================== TAREAS ====================

    async def sweep_expired_routes(self):
        """Cierra las rutas En Progreso cuya ventana de 7 días terminó"""
        from services.expiration_sweep import sweep_all

        try:
            return await sweep_all()
        except Exception as e:
            logger.error(f"[SCHEDULER] expiration sweep failed: {str(e)}")

    async def purge_sessions(self):
        try:
            result = await db.sessions.delete_many({"expires_at": {"$lt": now_iso()}})
            logger.info(f"[SCHEDULER] sessions purged: {result.deleted_count}")
        except Exception as e:
            logger.error(f"[SCHEDULER] session purge failed: {str(e)}")


# Instancia global
task_scheduler = TaskScheduler()
