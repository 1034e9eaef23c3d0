"""
Database connectivity and credit consistency check script
"""
import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from volunteer_board.db.database import AsyncSessionLocal, engine, init_db
from volunteer_board.db.models import Completion, Task, TaskStatus, Volunteer
from sqlalchemy import func, select, text
from loguru import logger


async def check_database():
    """Check database connectivity, table counts and minutes drift"""
    logger.info("🔍 Checking database connectivity...")

    try:
        await init_db()

        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
            logger.info("✅ Database connection successful")

            volunteer_count = await db.scalar(select(func.count()).select_from(Volunteer))
            completion_count = await db.scalar(select(func.count()).select_from(Completion))
            archived_count = await db.scalar(
                select(func.count()).select_from(Task).filter(Task.archived.is_(True))
            )
            status_counts = await db.execute(
                select(Task.status, func.count())
                .filter(Task.archived.is_(False))
                .group_by(Task.status)
            )

            logger.info("📊 Database statistics:")
            for task_status, count in status_counts.all():
                logger.info(f"   Tasks {task_status.value}: {count}")
            logger.info(f"   Tasks archived: {archived_count}")
            logger.info(f"   Volunteers: {volunteer_count}")
            logger.info(f"   Completions: {completion_count}")

            # Cached totals against completion history
            completion_sums = (
                select(Completion.volunteer_id, func.sum(Completion.actual_minutes).label("minutes"))
                .group_by(Completion.volunteer_id)
                .subquery()
            )
            drift = await db.execute(
                select(Volunteer.id, Volunteer.display_name, Volunteer.total_minutes,
                       func.coalesce(completion_sums.c.minutes, 0))
                .outerjoin(completion_sums, completion_sums.c.volunteer_id == Volunteer.id)
                .filter(Volunteer.total_minutes != func.coalesce(completion_sums.c.minutes, 0))
            )
            drifted = drift.all()
            if drifted:
                logger.warning(f"⚠️ {len(drifted)} volunteer(s) with total_minutes out of step with completions:")
                for volunteer_id, name, total, history in drifted:
                    logger.warning(f"   {name} ({volunteer_id}): cached {total}, completions {history}")
            else:
                logger.info("✅ Every total_minutes matches its completion history")

    except Exception as e:
        logger.error(f"❌ Database check failed: {e}")
        raise
    finally:
        await engine.dispose()

if __name__ == "__main__":
    asyncio.run(check_database())
