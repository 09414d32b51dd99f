from fastapi import FastAPI, Depends, HTTPException, status
from typing import List, Optional
import atexit
import logging
import os
from pathlib import Path

from touchwood.constants import (
    DEFAULT_DAY_START_HOUR, DEFAULT_LOG_DIRECTORY, DEFAULT_LOG_FILE
)
from touchwood.database import SessionLocal
from touchwood.exceptions import (
    EventNotFoundException, RitualNotFoundException,
    RitualUnavailableException, ValidationException
)
from touchwood.schemas import (
    AchievementsResponse, ChallengesResponse, CompletionRequest, CompletionResult,
    CustomRitualCreate, DomainEvent, EventsResponse, MoodSummary, ProgressResponse,
    Ritual, SeasonalEvent, SharePayload, ShareRequest, SpecialRitual
)
from touchwood.auth import verify_api_key
from touchwood.migrations import create_tables
from touchwood.repositories.state_repository import SqlStateStore, StateRepository, WriteBehindStore
from touchwood.scheduler import start_scheduler, stop_scheduler
from touchwood.services.date_service import DateService
from touchwood.services.gamification_service import GamificationService

LOG_DIR = os.getenv("TOUCHWOOD_LOG_DIR", DEFAULT_LOG_DIRECTORY)
LOG_FILE = os.getenv("TOUCHWOOD_LOG_FILE", DEFAULT_LOG_FILE)
DAY_START_HOUR = int(os.getenv("TOUCHWOOD_DAY_START_HOUR", DEFAULT_DAY_START_HOUR))

try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory
    LOG_DIR = DEFAULT_LOG_DIRECTORY
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

logger = logging.getLogger("touchwood")

app = FastAPI(
    title="Touch Wood API",
    description="Streaks, challenges, achievements and seasonal events for good-luck rituals",
    version="1.0.0"
)

state_store: Optional[WriteBehindStore] = None
gamification: Optional[GamificationService] = None


def _build_service() -> GamificationService:
    global state_store, gamification
    create_tables()
    state_store = WriteBehindStore(SqlStateStore(SessionLocal))
    atexit.register(state_store.flush)
    gamification = GamificationService(
        StateRepository(state_store),
        DateService(day_start_hour=DAY_START_HOUR)
    )
    return gamification


def get_gamification() -> GamificationService:
    """Dependency returning the process-wide service"""
    if gamification is None:
        return _build_service()
    return gamification


# Startup event
@app.on_event("startup")
async def startup_event():
    service = get_gamification()
    logger.info(f"Touch Wood API started. Logging to: {log_path}")
    start_scheduler(service, state_store)


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Touch Wood API")
    stop_scheduler()
    if state_store is not None:
        written = state_store.flush()
        logger.info(f"Flushed {written} state record(s) on shutdown")


# Health check (no auth required)
@app.get("/")
async def root():
    return {"message": "Touch Wood API", "status": "active"}


# Progress
@app.post("/api/rituals/{ritual_id}/complete", response_model=CompletionResult, dependencies=[Depends(verify_api_key)])
async def complete_ritual(
    ritual_id: str,
    request: Optional[CompletionRequest] = None,
    service: GamificationService = Depends(get_gamification)
):
    """Record a ritual completion"""
    request = request or CompletionRequest()
    try:
        return service.complete_ritual(
            ritual_id, mood=request.mood, note=request.note, ritual_name=request.ritual_name
        )
    except ValidationException as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RitualUnavailableException as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.get("/api/progress", response_model=ProgressResponse, dependencies=[Depends(verify_api_key)])
async def get_progress(service: GamificationService = Depends(get_gamification)):
    """Get streak, counts, level and points"""
    return service.progress_summary()


# Daily challenges
@app.get("/api/challenges", response_model=ChallengesResponse, dependencies=[Depends(verify_api_key)])
async def get_challenges(service: GamificationService = Depends(get_gamification)):
    """Get today's challenges"""
    service.refresh_daily_challenges()
    challenges = service.challenges
    return ChallengesResponse(
        challenges=challenges.current_challenges,
        completed_today=challenges.total_completed_today,
        available_today=challenges.total_available_today,
        completion_rate=challenges.completion_rate_today,
        total_points=challenges.total_points,
        badges=challenges.state.badges
    )


@app.post("/api/challenges/refresh", dependencies=[Depends(verify_api_key)])
async def refresh_challenges(service: GamificationService = Depends(get_gamification)):
    """Draw today's challenges if not drawn yet"""
    refreshed = service.refresh_daily_challenges()
    return {"refreshed": refreshed, "count": service.challenges.total_available_today}


# Achievements
@app.get("/api/achievements", response_model=AchievementsResponse, dependencies=[Depends(verify_api_key)])
async def get_achievements(service: GamificationService = Depends(get_gamification)):
    """Get the achievement catalog with unlock flags"""
    response = AchievementsResponse(
        achievements=service.achievements.achievements,
        total_points=service.achievements.total_points,
        newly_unlocked=service.achievements.newly_unlocked
    )
    service.achievements.clear_newly_unlocked()
    return response


# Seasonal events
@app.get("/api/events", response_model=EventsResponse, dependencies=[Depends(verify_api_key)])
async def get_events(service: GamificationService = Depends(get_gamification)):
    """Get current, upcoming and past seasonal events"""
    seasonal = service.seasonal
    return EventsResponse(
        current=seasonal.current_events(),
        upcoming=seasonal.upcoming_events(),
        past=seasonal.past_events(),
        event_progress=seasonal.state.event_progress,
        completed_events=seasonal.completed_events_count
    )


@app.get("/api/events/rituals", response_model=List[SpecialRitual], dependencies=[Depends(verify_api_key)])
async def get_available_rituals(service: GamificationService = Depends(get_gamification)):
    """Get special rituals usable right now"""
    return service.seasonal.get_available_rituals()


@app.get("/api/events/{event_id}", response_model=SeasonalEvent, dependencies=[Depends(verify_api_key)])
async def get_event(event_id: str, service: GamificationService = Depends(get_gamification)):
    """Get one seasonal event"""
    try:
        return service.seasonal.require_event(event_id)
    except EventNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/api/events/rituals/{ritual_id}/use", response_model=CompletionResult, dependencies=[Depends(verify_api_key)])
async def use_special_ritual(
    ritual_id: str,
    request: Optional[CompletionRequest] = None,
    service: GamificationService = Depends(get_gamification)
):
    """Perform a seasonal special ritual"""
    request = request or CompletionRequest()
    try:
        return service.perform_special_ritual(ritual_id, mood=request.mood, note=request.note)
    except RitualNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RitualUnavailableException as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationException as e:
        raise HTTPException(status_code=422, detail=str(e))


# Mood
@app.get("/api/mood", response_model=MoodSummary, dependencies=[Depends(verify_api_key)])
async def get_mood(service: GamificationService = Depends(get_gamification)):
    """Get mood analytics"""
    service.mood.analyze()
    return service.mood.summary()


# Social
@app.post("/api/shares", response_model=SharePayload, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
async def create_share(request: ShareRequest, service: GamificationService = Depends(get_gamification)):
    """Record a share"""
    try:
        return service.share(request.type, request.item_id)
    except ValidationException as e:
        raise HTTPException(status_code=422, detail=str(e))


# Ritual catalog
@app.get("/api/rituals", response_model=List[Ritual], dependencies=[Depends(verify_api_key)])
async def get_rituals(service: GamificationService = Depends(get_gamification)):
    """Get built-in and custom rituals"""
    return service.catalog.all_rituals()


@app.post("/api/rituals", response_model=Ritual, status_code=status.HTTP_201_CREATED, dependencies=[Depends(verify_api_key)])
async def create_ritual(ritual: CustomRitualCreate, service: GamificationService = Depends(get_gamification)):
    """Create a custom ritual"""
    try:
        return service.create_custom_ritual(ritual.name, ritual.description, ritual.icon, ritual.category)
    except ValidationException as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.delete("/api/rituals/{ritual_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(verify_api_key)])
async def delete_ritual(ritual_id: str, service: GamificationService = Depends(get_gamification)):
    """Delete a custom ritual"""
    try:
        service.catalog.delete_custom_ritual(ritual_id)
    except RitualNotFoundException as e:
        raise HTTPException(status_code=404, detail=str(e))


# Notifications
@app.get("/api/notifications", response_model=List[DomainEvent], dependencies=[Depends(verify_api_key)])
async def get_notifications(service: GamificationService = Depends(get_gamification)):
    """Get and clear pending notifications"""
    return service.drain_notifications()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("touchwood.main:app", host="0.0.0.0", port=8000, reload=False)
