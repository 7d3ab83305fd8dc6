"""
HTTP API for QuizMaster: trivia proxy, score storage, leaderboard and stats.
"""
import logging
from typing import Any, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config_manager import ConfigManager
from .data_manager import ScoreStore
from .errors import PersistenceFailure, SourceUnavailable, ValidationError
from .models import format_timestamp, utc_now
from .question_source import OpenTriviaClient
from . import scoreboard

logger = logging.getLogger(__name__)


class ScoreSubmission(BaseModel):
    """Score payload posted by clients. Fields are validated by ScoreRecord.create."""
    username: Optional[Any] = Field(None, description="Player name")
    score: Optional[Any] = Field(None, description="Number of correct answers")
    totalQuestions: Optional[Any] = Field(None, description="Number of questions in the quiz")
    percentage: Optional[Any] = Field(None, description="Percentage, derived when omitted")
    date: Optional[Any] = Field(None, description="ISO-8601 completion time, defaults to now")


def create_app(
    score_store: ScoreStore,
    question_source: Optional[OpenTriviaClient] = None,
    config_manager: Optional[ConfigManager] = None
) -> FastAPI:
    """
    Build the FastAPI application around a score store and a trivia client.

    Args:
        score_store: Loaded score store
        question_source: Trivia client, a default Open Trivia DB client when omitted
        config_manager: Settings for default question amount and leaderboard size
    """
    question_source = question_source or OpenTriviaClient()
    config_manager = config_manager or ConfigManager()

    app = FastAPI(
        title="QuizMaster API",
        description="Trivia question proxy with score storage and leaderboard",
        version="1.0.0"
    )
    app.state.score_store = score_store
    app.state.question_source = question_source
    app.state.config_manager = config_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Endpoint not found",
                    "path": request.url.path,
                    "method": request.method
                }
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Server error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/api/health")
    def health():
        return {
            "status": "ok",
            "message": "Quiz Backend API is running",
            "timestamp": format_timestamp(utc_now())
        }

    @app.get("/api/questions")
    def get_questions(
        amount: Optional[int] = Query(None, ge=1, le=ConfigManager.MAX_QUESTION_AMOUNT),
        category: Optional[int] = Query(None, ge=1),
        difficulty: Optional[str] = Query(None, pattern="^(easy|medium|hard)$"),
        question_type: Optional[str] = Query(None, alias="type", pattern="^(multiple|boolean)$")
    ):
        settings = config_manager.get_quiz_settings()
        try:
            return question_source.fetch_payload(
                amount=amount or settings.question_amount,
                category=category,
                difficulty=difficulty,
                question_type=question_type
            )
        except SourceUnavailable as e:
            if e.code is not None:
                return JSONResponse(
                    status_code=400,
                    content={
                        "error": "Failed to fetch questions",
                        "code": e.code,
                        "message": str(e)
                    }
                )
            return JSONResponse(
                status_code=502,
                content={
                    "error": "Upstream unavailable",
                    "message": "Failed to fetch questions from the API"
                }
            )

    @app.get("/api/scores")
    def get_scores(limit: Optional[int] = Query(None, ge=1)):
        records = score_store.list_records()
        return {
            "total": len(records),
            "scores": [record.to_dict() for record in scoreboard.list_scores(records, limit)]
        }

    @app.post("/api/scores", status_code=201)
    def save_score(submission: ScoreSubmission):
        try:
            record = score_store.create_record(
                username=submission.username,
                score=submission.score,
                total_questions=submission.totalQuestions,
                percentage=submission.percentage,
                date=submission.date
            )
        except ValidationError as e:
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid score submission", "field": e.field, "message": e.message}
            )
        except PersistenceFailure as e:
            logger.error(f"Error saving score: {e}")
            return JSONResponse(status_code=500, content={"error": "Failed to save score"})

        return {"message": "Score saved successfully", "score": record.to_dict()}

    @app.get("/api/leaderboard")
    def get_leaderboard(limit: Optional[int] = Query(None, ge=1)):
        records = score_store.list_records()
        entries = scoreboard.leaderboard(records, limit or config_manager.get_leaderboard_limit())
        return {
            "total": scoreboard.count_users(records),
            "leaderboard": [entry.to_dict() for entry in entries]
        }

    @app.get("/api/stats")
    def get_stats():
        return scoreboard.stats(score_store.list_records()).to_dict()

    @app.delete("/api/scores/{score_id}")
    def delete_score(score_id: str):
        try:
            deleted = score_store.delete_record(score_id)
        except PersistenceFailure as e:
            logger.error(f"Error deleting score {score_id}: {e}")
            return JSONResponse(status_code=500, content={"error": "Failed to delete score"})

        if not deleted:
            return JSONResponse(status_code=404, content={"error": "Score not found"})
        return {"message": "Score deleted successfully"}

    return app
