"""CPU roster endpoints."""

from fastapi import APIRouter

from blackjack.cpu import CpuProfile
from blackjack.errors import InputError, NotFoundError
from server.schemas import CpuProfileRequest, CpuProfileResponse

router = APIRouter()

# CPU roster, keyed by name
_roster: dict[str, CpuProfile] = {}


def _profile_response(profile: CpuProfile) -> CpuProfileResponse:
    """Convert a CpuProfile to CpuProfileResponse."""
    return CpuProfileResponse(
        name=profile.name,
        confidence=profile.confidence,
        risk=profile.risk,
        surrender_rate=profile.surrender_rate,
        stand_threshold=profile.stand_threshold,
    )


def get_profiles(names: list[str]) -> list[CpuProfile]:
    """Look up seated CPUs by name, keeping the requested order."""
    missing = [name for name in names if name not in _roster]
    if missing:
        raise NotFoundError(f"Unknown CPU: {', '.join(missing)}")
    return [_roster[name] for name in names]


@router.post("")
async def create_cpu(request: CpuProfileRequest) -> CpuProfileResponse:
    """Add a CPU opponent to the roster."""
    name = request.name
    if name in _roster:
        raise InputError(f"CPU already exists: {name}")

    try:
        profile = CpuProfile(
            name=name,
            confidence=request.confidence,
            risk=request.risk,
            surrender_rate=request.surrender_rate,
        )
    except ValueError as exc:
        raise InputError(str(exc)) from exc

    _roster[name] = profile
    return _profile_response(profile)


@router.get("")
async def list_cpus() -> list[CpuProfileResponse]:
    """List the CPU roster."""
    return [_profile_response(p) for p in _roster.values()]


@router.get("/{name}")
async def get_cpu(name: str) -> CpuProfileResponse:
    """Get one CPU profile."""
    (profile,) = get_profiles([name])
    return _profile_response(profile)
