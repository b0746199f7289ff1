import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..analysis.admission import VoteAdmission
from ..analysis.lifecycle import ElectionLifecycle
from ..analysis.registration import RegistrationService
from ..analysis.tally import TallyEngine
from ..config import DATABASE_PATH_ENV, Settings
from ..crypto.accumulator import CommitmentTree
from ..crypto.groth16 import load_verifier
from ..crypto.hashing import get_hasher
from ..data.database import ElectionDatabase
from ..data.models import ElectionStatus
from ..errors import BallotProofError

logger = logging.getLogger(__name__)

app = FastAPI(
    title="ballotproof",
    description="Anonymous voting: eligibility snapshots, ZK vote admission and tallying",
)

# Global database path - falls back to BALLOTPROOF_DATABASE_PATH
db_path = None

_services = None
_services_lock = threading.Lock()


@dataclass
class Services:
    database: ElectionDatabase
    registration: RegistrationService
    lifecycle: ElectionLifecycle
    admission: VoteAdmission
    tally: TallyEngine

    def close(self):
        self.admission.shutdown()
        self.database.close()


class CommitmentRequest(BaseModel):
    voter_identity_hash: str
    commitment: str


class StatusRequest(BaseModel):
    status: ElectionStatus


class VoteRequest(BaseModel):
    election_id: str
    candidate_id: Optional[str] = None
    proof: Dict[str, Any]
    public_signals: List[str]


@app.on_event("startup")
async def startup_event():
    """Initialize the application."""
    logger.info("Starting ballotproof API")


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up on shutdown."""
    logger.info("Shutting down ballotproof API")
    reset_services()


@app.exception_handler(BallotProofError)
async def ballotproof_error_handler(request: Request, exc: BallotProofError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def build_services(path: str, settings: Optional[Settings] = None) -> Services:
    settings = settings or Settings.from_env()
    database = ElectionDatabase(path)
    tree = CommitmentTree(get_hasher(settings.hasher))
    logger.info(f"Commitment tree hasher: {tree.hasher.name}")
    return Services(
        database=database,
        registration=RegistrationService(database, tree),
        lifecycle=ElectionLifecycle(database, tree),
        admission=VoteAdmission(
            database,
            verifier=load_verifier(settings.verification_key_path),
            verify_workers=settings.verify_workers,
            allow_presnapshot_voting=settings.allow_presnapshot_voting,
        ),
        tally=TallyEngine(database),
    )


def get_services() -> Services:
    """
    Shared services over one database connection.
    The path comes from set_database_path() or Settings.database_path.
    """
    global _services
    if _services is None:
        with _services_lock:
            if _services is None:
                settings = Settings.from_env()
                path = db_path or settings.database_path
                if not path:
                    raise HTTPException(status_code=500, detail="Database not configured")
                _services = build_services(path, settings)
    return _services


def get_database() -> ElectionDatabase:
    return get_services().database


def set_services(services: Optional[Services]):
    """Install prebuilt services (tests, embedding)."""
    global _services
    with _services_lock:
        _services = services


def reset_services():
    global _services
    with _services_lock:
        if _services is not None:
            _services.close()
            _services = None


def set_database_path(path: str):
    """Set the database path for the application."""
    global db_path
    reset_services()
    db_path = path
    os.environ[DATABASE_PATH_ENV] = path
    logger.info(f"Database path set to: {path}")

    # Test connection to ensure database is accessible
    try:
        get_database().table_exists("elections")
        logger.info("Database connection test successful")
    except Exception as e:
        logger.error(f"Database connection test failed: {e}")
        raise


# API Routes
@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.post("/api/elections/{election_id}/commitments")
def register_commitment(election_id: str, body: CommitmentRequest):
    """Register a voter's identity commitment during registration."""
    return get_services().registration.register_identity_commitment(
        election_id, body.voter_identity_hash, body.commitment
    )


@app.post("/api/elections/{election_id}/snapshot")
def snapshot_election(election_id: str):
    """Recompute and store the eligibility root."""
    root = get_services().registration.snapshot_election(election_id)
    return {"election_id": election_id, "merkle_root": root}


@app.get("/api/elections/{election_id}/merkle-proof")
def get_merkle_proof(election_id: str, commitment: str):
    proof = get_services().registration.get_merkle_proof(election_id, commitment)
    return proof.to_dict()


@app.get("/api/elections/{election_id}/eligibility")
def check_eligibility(election_id: str, voter_hash: str):
    return get_services().registration.check_eligibility(election_id, voter_hash)


@app.get("/api/elections/{election_id}/root-check")
def verify_published_root(election_id: str):
    return get_services().registration.verify_published_root(election_id)


@app.post("/api/elections/{election_id}/status")
def advance_status(election_id: str, body: StatusRequest):
    return get_services().lifecycle.advance(election_id, body.status)


@app.post("/api/votes", status_code=201)
def submit_vote(body: VoteRequest):
    """Admit an anonymous vote backed by a zero-knowledge proof."""
    return get_services().admission.submit_vote(
        body.election_id, body.candidate_id, body.proof, body.public_signals
    )


@app.get("/api/elections/{election_id}/tally")
def get_tally(election_id: str):
    return get_services().tally.get_tally(election_id)


@app.get("/api/elections/{election_id}/audit-logs")
def get_audit_logs(election_id: str):
    return get_services().tally.get_audit_logs(election_id)


@app.get("/api/elections/{election_id}/nullifiers/{nullifier_hash}")
def check_nullifier(election_id: str, nullifier_hash: str):
    return get_services().tally.check_nullifier(election_id, nullifier_hash)
