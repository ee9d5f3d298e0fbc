import requests
from fastapi import HTTPException, Request

from aiauto.domain.auth.models import Identity
from aiauto.infra.supabase.client import SupabaseRest


def get_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("authorization") or request.headers.get("Authorization")
    if not auth:
        return None
    parts = auth.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip() or None
    return None


def require_authed_user(request: Request, sb: SupabaseRest) -> Identity:
    token = get_bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing Authorization Bearer token")

    try:
        user = sb.auth_get_user(token)
    except RuntimeError as e:
        # missing SUPABASE_URL / SUPABASE_ANON_KEY
        raise HTTPException(status_code=500, detail=str(e))
    except (requests.RequestException, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired Supabase token")

    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired Supabase token")

    return Identity(user_id=user["id"], email=user.get("email"))
