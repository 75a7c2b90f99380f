from fastapi import FastAPI, Depends, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
import logging
import os
from pathlib import Path

from morningproof.database import engine, get_db, Base
from morningproof import models  # noqa: F401  registers tables on Base
from morningproof.schemas import (
    SettingsUpdate, SettingsResponse, DeadlineResponse,
    HabitCatalogEntry, HabitConfigUpdate, HabitConfigResponse,
    CompleteHabitRequest, BedVerificationRequest, JournalEntryRequest,
    SleepUpdateRequest, StepsUpdateRequest,
    CustomHabitCreate, CustomHabitUpdate, CustomHabitResponse, CustomVerificationRequest,
    DailyLogResponse, HabitCompletionResponse, TodayResponse,
    StreakStatusResponse, StreakRecordResponse, FinalizeResponse, RecoveryTokenPurchase,
    AchievementResponse, AchievementProgressResponse,
    WidgetDataResponse, AppLockStatusResponse, PlannedNotification
)
from morningproof.auth import verify_api_key
from morningproof import crud
from morningproof.scheduler import start_scheduler, stop_scheduler
from morningproof.auto_migrate import auto_migrate
from morningproof.exceptions import (
    MorningProofException, HabitNotFoundException, LogNotFoundException,
    VerificationFailedException, DatabaseException
)
from morningproof.constants import (
    DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV, CORS_ALLOWED_ORIGINS
)

LOG_DIR = os.getenv("MORNINGPROOF_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("MORNINGPROOF_LOG_FILE", "app.log")

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    LOG_DIR = DEFAULT_LOG_DIRECTORY_DEV
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_path),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger("morningproof")

# Create database tables
Base.metadata.create_all(bind=engine)

# Add columns missing from older databases
try:
    auto_migrate()
except Exception as e:
    logger.error(f"Auto-migration failed: {e}")
    # Don't crash the app - continue with existing schema

app = FastAPI(
    title="Morning Proof API",
    description="Morning habit ledger with deadlines, streaks and app locking",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _http_error(e: MorningProofException) -> HTTPException:
    if isinstance(e, (HabitNotFoundException, LogNotFoundException)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, VerificationFailedException):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "feedback": e.feedback, "retake": True}
        )
    if isinstance(e, DatabaseException):
        return HTTPException(status_code=500, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


# Startup event
@app.on_event("startup")
async def startup_event():
    logger.info(f"Morning Proof API started. Logging to: {log_path}")
    start_scheduler()

# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Morning Proof API")
    stop_scheduler()

# Health check (no auth required)
@app.get("/")
async def root():
    return {"message": "Morning Proof API", "status": "active"}

# Settings
@app.get("/api/settings", response_model=SettingsResponse, dependencies=[Depends(verify_api_key)])
async def get_settings(db: Session = Depends(get_db)):
    """Get application settings"""
    return crud.get_settings(db)

@app.put("/api/settings", response_model=SettingsResponse, dependencies=[Depends(verify_api_key)])
async def update_settings(settings_update: SettingsUpdate, db: Session = Depends(get_db)):
    """Update settings (only the fields sent)"""
    try:
        return crud.update_settings(db, settings_update)
    except MorningProofException as e:
        raise _http_error(e)

@app.get("/api/deadline", response_model=DeadlineResponse, dependencies=[Depends(verify_api_key)])
async def get_deadline(target_date: Optional[date] = None, db: Session = Depends(get_db)):
    """Resolved cutoff for a date (today by default)"""
    try:
        return crud.get_deadline(db, target_date or date.today())
    except MorningProofException as e:
        raise _http_error(e)

# Habits
@app.get("/api/habits/catalog", response_model=List[HabitCatalogEntry], dependencies=[Depends(verify_api_key)])
async def get_habit_catalog():
    return crud.get_habit_catalog()

@app.get("/api/habits", response_model=List[HabitConfigResponse], dependencies=[Depends(verify_api_key)])
async def get_habits(db: Session = Depends(get_db)):
    """Habit configs in display order"""
    return crud.get_habit_configs(db)

@app.put("/api/habits/{habit_type}", response_model=HabitConfigResponse, dependencies=[Depends(verify_api_key)])
async def update_habit(habit_type: str, update: HabitConfigUpdate, db: Session = Depends(get_db)):
    """Enable/disable a habit or change its goal, order or active days"""
    try:
        return crud.update_habit_config(db, habit_type, update)
    except MorningProofException as e:
        raise _http_error(e)

# Custom habits
@app.get("/api/custom-habits", response_model=List[CustomHabitResponse], dependencies=[Depends(verify_api_key)])
async def get_custom_habits(db: Session = Depends(get_db)):
    return crud.get_custom_habits(db)

@app.post("/api/custom-habits", response_model=CustomHabitResponse, dependencies=[Depends(verify_api_key)])
async def create_custom_habit(data: CustomHabitCreate, db: Session = Depends(get_db)):
    """Create a user habit; it joins today's log when scheduled today"""
    try:
        return crud.create_custom_habit(db, data)
    except MorningProofException as e:
        raise _http_error(e)

@app.put("/api/custom-habits/{habit_id}", response_model=CustomHabitResponse, dependencies=[Depends(verify_api_key)])
async def update_custom_habit(habit_id: int, update: CustomHabitUpdate, db: Session = Depends(get_db)):
    try:
        return crud.update_custom_habit(db, habit_id, update)
    except MorningProofException as e:
        raise _http_error(e)

# Today
@app.get("/api/today", response_model=TodayResponse, dependencies=[Depends(verify_api_key)])
async def get_today(db: Session = Depends(get_db)):
    """Today's log with deadline and lock-in state"""
    try:
        return crud.get_today(db)
    except MorningProofException as e:
        raise _http_error(e)

@app.post("/api/today/habits/{habit_type}/complete", response_model=DailyLogResponse, dependencies=[Depends(verify_api_key)])
async def complete_habit(habit_type: str, request: Optional[CompleteHabitRequest] = None, db: Session = Depends(get_db)):
    """Honor-system completion"""
    try:
        return crud.complete_habit(db, habit_type, request.completed_at if request else None)
    except MorningProofException as e:
        raise _http_error(e)

@app.post("/api/today/habits/{habit_type}/undo", response_model=DailyLogResponse, dependencies=[Depends(verify_api_key)])
async def undo_habit(habit_type: str, db: Session = Depends(get_db)):
    try:
        return crud.undo_completion(db, habit_type)
    except MorningProofException as e:
        raise _http_error(e)

@app.post("/api/today/bed-verification", response_model=DailyLogResponse, dependencies=[Depends(verify_api_key)])
async def verify_bed(result: BedVerificationRequest, db: Session = Depends(get_db)):
    """Apply the AI bed check; an unmade bed returns 422 and changes nothing"""
    try:
        return crud.complete_bed_verification(db, result)
    except MorningProofException as e:
        raise _http_error(e)

@app.post("/api/today/journal", response_model=DailyLogResponse, dependencies=[Depends(verify_api_key)])
async def submit_journal(entry: JournalEntryRequest, db: Session = Depends(get_db)):
    try:
        return crud.complete_journaling(db, entry.text, entry.completed_at)
    except MorningProofException as e:
        raise _http_error(e)

@app.post("/api/today/sleep", response_model=DailyLogResponse, dependencies=[Depends(verify_api_key)])
async def update_sleep(update: SleepUpdateRequest, db: Session = Depends(get_db)):
    try:
        return crud.update_sleep(db, update.hours, update.completed_at)
    except MorningProofException as e:
        raise _http_error(e)

@app.post("/api/today/steps", response_model=DailyLogResponse, dependencies=[Depends(verify_api_key)])
async def update_steps(update: StepsUpdateRequest, db: Session = Depends(get_db)):
    try:
        return crud.update_steps(db, update.steps, update.completed_at)
    except MorningProofException as e:
        raise _http_error(e)

@app.post("/api/today/custom-habits/{habit_id}/complete", response_model=DailyLogResponse, dependencies=[Depends(verify_api_key)])
async def complete_custom_habit(habit_id: int, request: Optional[CompleteHabitRequest] = None, db: Session = Depends(get_db)):
    """Honor-system completion of a custom habit; undo goes through /api/today/habits/custom_<id>/undo"""
    try:
        return crud.complete_custom_habit(db, habit_id, request.completed_at if request else None)
    except MorningProofException as e:
        raise _http_error(e)

@app.post("/api/today/custom-habits/{habit_id}/verification", response_model=DailyLogResponse, dependencies=[Depends(verify_api_key)])
async def verify_custom_habit(habit_id: int, result: CustomVerificationRequest, db: Session = Depends(get_db)):
    """Apply the AI check for a photo-verified custom habit; a failed check returns 422"""
    try:
        return crud.complete_custom_verification(db, habit_id, result)
    except MorningProofException as e:
        raise _http_error(e)

# Log history
@app.get("/api/logs", response_model=List[DailyLogResponse], dependencies=[Depends(verify_api_key)])
async def get_logs(days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)):
    """Daily logs for the last N days, newest first"""
    return crud.get_logs(db, days)

@app.get("/api/logs/{target_date}", response_model=DailyLogResponse, dependencies=[Depends(verify_api_key)])
async def get_log(target_date: date, db: Session = Depends(get_db)):
    try:
        return crud.get_log(db, target_date)
    except MorningProofException as e:
        raise _http_error(e)

@app.get("/api/logs/{target_date}/habits/{habit_type}", response_model=HabitCompletionResponse, dependencies=[Depends(verify_api_key)])
async def get_completion(target_date: date, habit_type: str, db: Session = Depends(get_db)):
    try:
        return crud.get_completion(db, target_date, habit_type)
    except MorningProofException as e:
        raise _http_error(e)

# Streak
@app.get("/api/streak", response_model=StreakStatusResponse, dependencies=[Depends(verify_api_key)])
async def get_streak(db: Session = Depends(get_db)):
    return crud.get_streak_status(db)

@app.get("/api/streak/records", response_model=List[StreakRecordResponse], dependencies=[Depends(verify_api_key)])
async def get_streak_records(db: Session = Depends(get_db)):
    return crud.get_streak_records(db)

@app.post("/api/streak/finalize", response_model=FinalizeResponse, dependencies=[Depends(verify_api_key)])
async def finalize_days(db: Session = Depends(get_db)):
    """Record every unrecorded past day (normally done by the scheduler)"""
    return crud.finalize_days(db)

@app.post("/api/streak/recover", response_model=StreakStatusResponse, dependencies=[Depends(verify_api_key)])
async def recover_streak(db: Session = Depends(get_db)):
    """Spend a recovery token on the missed day above the current run"""
    try:
        return crud.recover_streak(db)
    except MorningProofException as e:
        raise _http_error(e)

@app.post("/api/streak/tokens", response_model=StreakStatusResponse, dependencies=[Depends(verify_api_key)])
async def add_recovery_tokens(purchase: RecoveryTokenPurchase, db: Session = Depends(get_db)):
    return crud.add_recovery_tokens(db, purchase.count)

# Achievements
@app.get("/api/achievements", response_model=List[AchievementResponse], dependencies=[Depends(verify_api_key)])
async def get_achievements(db: Session = Depends(get_db)):
    return crud.get_achievements(db)

@app.post("/api/achievements/check", response_model=AchievementProgressResponse, dependencies=[Depends(verify_api_key)])
async def check_achievements(db: Session = Depends(get_db)):
    return crud.check_achievements(db)

# Widget
@app.get("/api/widget", response_model=WidgetDataResponse, dependencies=[Depends(verify_api_key)])
async def get_widget(db: Session = Depends(get_db)):
    return crud.get_widget_data(db)

@app.post("/api/widget/refresh", response_model=Optional[WidgetDataResponse], dependencies=[Depends(verify_api_key)])
async def refresh_widget(db: Session = Depends(get_db)):
    return crud.refresh_widget(db)

# App lock
@app.get("/api/app-lock", response_model=AppLockStatusResponse, dependencies=[Depends(verify_api_key)])
async def get_app_lock(db: Session = Depends(get_db)):
    return crud.get_app_lock_status(db)

@app.post("/api/app-lock/emergency-unlock", response_model=AppLockStatusResponse, dependencies=[Depends(verify_api_key)])
async def emergency_unlock(db: Session = Depends(get_db)):
    """Lift the shields without finishing; today will not count toward the streak"""
    return crud.emergency_unlock(db)

# Notifications
@app.get("/api/notifications/plan", response_model=List[PlannedNotification], dependencies=[Depends(verify_api_key)])
async def get_notification_plan(target_date: Optional[date] = None, db: Session = Depends(get_db)):
    try:
        return crud.get_notification_plan(db, target_date)
    except MorningProofException as e:
        raise _http_error(e)

# Reset
@app.post("/api/reset", response_model=SettingsResponse, dependencies=[Depends(verify_api_key)])
async def reset_all_data(db: Session = Depends(get_db)):
    """Delete all logs, streak history and settings"""
    try:
        return crud.reset_all_data(db)
    except MorningProofException as e:
        raise _http_error(e)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("morningproof.main:app", host="0.0.0.0", port=8000, reload=False)
