"""
chatlens/api.py
─────────────────────────────────────────────────────────────────────────────
chatlens — Dual-mode API layer

TWO USAGE MODES:
  1. Importable module:
         from chatlens.api import ChatLensAPI
         api   = ChatLensAPI()
         flags = api.red_flags("Alex: You never listen to me!")

  2. FastAPI HTTP server:
         python -m chatlens.api                   # default: port 8766
         python -m chatlens.api --port 9000
         uvicorn chatlens.api:app --port 8766

ENDPOINTS:
  POST /red-flags          — pattern matcher over a transcript
  POST /conflict-dynamics  — score participants from key quotes
  POST /analyze            — enhance an upstream analysis (or build one)
  GET  /config             — current detector / tier config
  POST /config             — update and persist config
  GET  /health             — health check

CORS: localhost-only (127.0.0.1 / ::1). Not exposed to network by default.
No external HTTP calls are made by this module.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from chatlens import __version__
from chatlens.analysis import analyze_transcript, enhance_analysis
from chatlens.config import (
    detector_settings,
    load_config,
    save_config,
    validate_config_update,
)
from chatlens.detectors.red_flag_detector import detect_red_flags, red_flag_to_dict
from chatlens.dynamics.conflict_dynamics import (
    analyze_conflict_dynamics,
    conflict_dynamics_to_dict,
)
from chatlens.parsers.transcript_parser import parse_transcript_file

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8766


# ═══════════════════════════════════════════════════════════════════════════
# IMPORTABLE CLASS
# ═══════════════════════════════════════════════════════════════════════════

class ChatLensAPI:
    """
    Pure-Python wrapper around the analysis pipeline.
    No HTTP layer required — import and call directly.

    Usage:
        api      = ChatLensAPI(project_root=Path("."))
        flags    = api.red_flags(text, health_score=60)
        dynamics = api.conflict_dynamics(quotes, ["Alex", "Jamie"], tier="pro")
        result   = api.analyze(text, analysis=upstream, tier="personal")
    """

    def __init__(self, project_root: Optional[Path] = None):
        self.project_root = Path(project_root) if project_root else Path.cwd()

    # ── INTERNAL ──────────────────────────────────────────────────────────

    def _settings(self):
        return detector_settings(load_config(self.project_root))

    def _tier(self, tier: Optional[str]) -> str:
        return tier or load_config(self.project_root).get("default_tier") or "free"

    @staticmethod
    def _check_health_score(health_score: Optional[float]) -> None:
        if health_score is not None and not 0 <= health_score <= 100:
            raise ValueError(f"health_score must be between 0 and 100, got {health_score}")

    def _conversation(self, conversation: Optional[str], transcript_path: Optional[str]) -> str:
        if conversation:
            return conversation
        if not transcript_path:
            return ""
        path = Path(transcript_path).resolve()
        if not path.is_file():
            raise ValueError(f"transcript_path is not a file: {path}")
        return parse_transcript_file(path)

    # ── OPERATIONS ────────────────────────────────────────────────────────

    def red_flags(
        self,
        conversation:         Optional[str]   = None,
        health_score:         Optional[float] = None,
        healthy_conversation: bool            = False,
        transcript_path:      Optional[str]   = None,
    ) -> List[Dict[str, Any]]:
        self._check_health_score(health_score)
        text  = self._conversation(conversation, transcript_path)
        flags = detect_red_flags(
            text,
            health_score,
            settings             = self._settings(),
            healthy_conversation = healthy_conversation,
        )
        return [red_flag_to_dict(f) for f in flags]

    def conflict_dynamics(
        self,
        key_quotes:        List[Dict[str, Any]],
        participant_names: List[str],
        tier:              Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """None when there are no quotes or no participants."""
        result = analyze_conflict_dynamics(key_quotes, participant_names, self._tier(tier))
        return conflict_dynamics_to_dict(result) if result is not None else None

    def analyze(
        self,
        conversation:      Optional[str]             = None,
        analysis:          Optional[Dict[str, Any]]  = None,
        key_quotes:        Optional[List[Dict]]      = None,
        participant_names: Optional[List[str]]       = None,
        tier:              Optional[str]             = None,
        health_score:      Optional[float]           = None,
        transcript_path:   Optional[str]             = None,
    ) -> Dict[str, Any]:
        """
        With `analysis`: enhance the upstream result in place of building one.
        Without: build the minimal result from quotes / participants / score.
        """
        self._check_health_score(health_score)
        text     = self._conversation(conversation, transcript_path)
        tier     = self._tier(tier)
        settings = self._settings()

        if analysis is not None:
            return enhance_analysis(analysis, text, tier=tier, settings=settings)
        return analyze_transcript(
            text,
            key_quotes        = key_quotes,
            participant_names = participant_names,
            tier              = tier,
            health_score      = health_score,
            settings          = settings,
        )

    def get_config(self) -> Dict[str, Any]:
        return load_config(self.project_root)

    def update_config(self, update: Dict[str, Any]) -> Dict[str, Any]:
        """Merge known keys into the persisted config. Unknown keys and bad values are rejected."""
        validate_config_update(update or {})
        config = load_config(self.project_root)
        config.update(update or {})
        save_config(config, self.project_root)
        logger.info(f"Config updated: {sorted((update or {}).keys())}")
        return config


# ═══════════════════════════════════════════════════════════════════════════
# FASTAPI HTTP APP
# ═══════════════════════════════════════════════════════════════════════════

class RedFlagRequest(BaseModel):
    conversation:         Optional[str]   = None
    transcript_path:      Optional[str]   = None
    health_score:         Optional[float] = None
    healthy_conversation: bool            = False


class KeyQuoteModel(BaseModel):
    speaker:  str
    quote:    str = ""
    analysis: str = ""


class ConflictDynamicsRequest(BaseModel):
    key_quotes:        List[KeyQuoteModel] = Field(default_factory=list)
    participant_names: List[str]           = Field(default_factory=list)
    tier:              Optional[str]       = None


class AnalyzeRequest(BaseModel):
    conversation:      Optional[str]            = None
    transcript_path:   Optional[str]            = None
    analysis:          Optional[Dict[str, Any]] = None
    key_quotes:        List[KeyQuoteModel]      = Field(default_factory=list)
    participant_names: Optional[List[str]]      = None
    tier:              Optional[str]            = None
    health_score:      Optional[float]          = None


def _build_app(project_root: Optional[Path] = None) -> FastAPI:
    """Build and return the FastAPI application instance."""
    _api = ChatLensAPI(project_root=project_root)

    _app = FastAPI(
        title       = "chatlens API",
        description = "Red-flag and conflict-dynamics analysis for chat transcripts — local API",
        version     = __version__,
        docs_url    = "/docs",
        redoc_url   = None,
    )

    # CORS: only allow localhost origins
    _app.add_middleware(
        CORSMiddleware,
        allow_origins     = [
            "http://localhost",
            f"http://localhost:{DEFAULT_PORT}",
            "http://127.0.0.1",
            f"http://127.0.0.1:{DEFAULT_PORT}",
            "null",   # file:// origin
        ],
        allow_methods     = ["GET", "POST", "OPTIONS"],
        allow_headers     = ["Content-Type"],
        allow_credentials = False,
    )

    # ── ENDPOINTS ───────────────────────────────────────────────────────

    @_app.post("/red-flags", summary="Detect red flags in a transcript")
    def red_flags(req: RedFlagRequest):
        try:
            flags = _api.red_flags(
                conversation         = req.conversation,
                health_score         = req.health_score,
                healthy_conversation = req.healthy_conversation,
                transcript_path      = req.transcript_path,
            )
            return {"redFlags": flags, "redFlagsCount": len(flags)}
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.error(f"Red flag endpoint error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Red flag detection failed: {exc}")

    @_app.post("/conflict-dynamics", summary="Score conflict dynamics from key quotes")
    def conflict_dynamics(req: ConflictDynamicsRequest):
        try:
            result = _api.conflict_dynamics(
                [q.model_dump() for q in req.key_quotes],
                req.participant_names,
                tier = req.tier,
            )
            return {"conflictDynamics": result}
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.error(f"Conflict dynamics endpoint error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Conflict dynamics failed: {exc}")

    @_app.post("/analyze", summary="Run the full enhancement pipeline")
    def analyze(req: AnalyzeRequest):
        """
        Red flags, conflict dynamics and (paid tiers) evasion detection.

        NOTE: output is heuristic. Do not present flags as clinical or
        legal conclusions.
        """
        try:
            return _api.analyze(
                conversation      = req.conversation,
                analysis          = req.analysis,
                key_quotes        = [q.model_dump() for q in req.key_quotes],
                participant_names = req.participant_names,
                tier              = req.tier,
                health_score      = req.health_score,
                transcript_path   = req.transcript_path,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.error(f"Analyze endpoint error: {exc}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Analysis failed: {exc}")

    @_app.get("/config", summary="Get config")
    def get_config():
        try:
            return {"config": _api.get_config()}
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))

    @_app.post("/config", summary="Save config")
    def save_config_endpoint(update: Dict[str, Any] = Body(default_factory=dict)):
        try:
            return {"status": "ok", "config": _api.update_config(update)}
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            raise HTTPException(status_code=500, detail=str(exc))

    @_app.get("/health", summary="Health check")
    def health():
        return {
            "status":  "ok",
            "version": __version__,
        }

    return _app


# Module-level app instance — used by uvicorn chatlens.api:app
app = _build_app()


# ═══════════════════════════════════════════════════════════════════════════
# CLI ENTRYPOINT — python -m chatlens.api
# ═══════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(
        prog        = "chatlens.api",
        description = "chatlens API Server — serves analysis on localhost",
    )
    parser.add_argument("--port",    type=int, default=DEFAULT_PORT,
                        help=f"Port to bind (default: {DEFAULT_PORT})")
    parser.add_argument("--root",    type=str, default=".",
                        help="Directory holding chatlens_config.json (default: .)")
    parser.add_argument("--host",    type=str, default="127.0.0.1",
                        help="Host to bind — DO NOT change to 0.0.0.0 on shared networks")
    args = parser.parse_args()

    logging.basicConfig(
        level   = logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    server_app = _build_app(project_root=Path(args.root))

    print(f"""
+--------------------------------------------------+
|   chatlens API Server v{__version__:<26}|
+--------------------------------------------------+
|  Local:    http://{args.host}:{args.port}
|  Config:   {Path(args.root).resolve() / 'chatlens_config.json'}
|  Docs:     http://{args.host}:{args.port}/docs
|  Health:   http://{args.host}:{args.port}/health
+--------------------------------------------------+
""")

    uvicorn.run(
        server_app,
        host      = args.host,
        port      = args.port,
        log_level = "info",
    )
