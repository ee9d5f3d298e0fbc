from datetime import datetime, timezone
from typing import Any, Optional

import requests

from aiauto.config import Settings, require_env

_BODY_PREVIEW = 800


class SupabaseError(RuntimeError):
    pass


def _preview(body: str) -> str:
    body = body or ""
    if len(body) > _BODY_PREVIEW:
        body = body[:_BODY_PREVIEW] + "...(truncated)"
    return body


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_ts(value: Any) -> Optional[datetime]:
    """PostgREST timestamptz -> aware datetime (None for empty/invalid)."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class SupabaseRest:
    """PostgREST / RPC / auth calls with the service-role key."""

    def __init__(self, url: str, service_role_key: str, anon_key: str = "", timeout: int = 15):
        self.url = (url or "").strip().rstrip("/")
        self.service_role_key = (service_role_key or "").strip()
        self.anon_key = (anon_key or "").strip()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseRest":
        return cls(
            url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
            anon_key=settings.supabase_anon_key,
        )

    def ensure_env_for_db(self):
        require_env("SUPABASE_URL", self.url)
        require_env("SUPABASE_SERVICE_ROLE_KEY", self.service_role_key)

    def ensure_env_for_auth(self):
        require_env("SUPABASE_URL", self.url)
        require_env("SUPABASE_ANON_KEY", self.anon_key)

    def admin_headers(self) -> dict:
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }

    def rest_url(self, table: str) -> str:
        self.ensure_env_for_db()
        return f"{self.url}/rest/v1/{table}"

    def rpc_url(self, fn: str) -> str:
        self.ensure_env_for_db()
        return f"{self.url}/rest/v1/rpc/{fn}"

    def _decode(self, r: requests.Response, verb: str) -> Any:
        ctype = (r.headers.get("content-type") or "").lower()
        if r.status_code >= 300:
            raise SupabaseError(
                f"Supabase {verb} failed: {r.status_code} {r.reason} "
                f"(content-type={ctype}) body={_preview(r.text)}"
            )

        if r.status_code == 204 or not (r.content and r.content.strip()):
            return []

        if "application/json" not in ctype and not ctype.endswith("+json"):
            return []

        try:
            return r.json()
        except ValueError as e:
            raise SupabaseError(
                f"Supabase {verb} JSON decode failed: {e} "
                f"(status={r.status_code}, content-type={ctype}) body={_preview(r.text)}"
            )

    def get_json(self, table: str, params: dict) -> list:
        r = requests.get(self.rest_url(table), headers=self.admin_headers(), params=params, timeout=self.timeout)
        return self._decode(r, "GET") or []

    def post_json(
        self,
        table: str,
        payload: Any,
        prefer: str = "return=representation",
        params: Optional[dict] = None,
    ) -> list:
        headers = self.admin_headers()
        headers["Prefer"] = prefer
        r = requests.post(self.rest_url(table), headers=headers, params=params, json=payload, timeout=self.timeout)
        return self._decode(r, "POST") or []

    def patch_json(self, table: str, params: dict, payload: dict, prefer: Optional[str] = None) -> Any:
        headers = self.admin_headers()
        if prefer:
            headers = {**headers, "Prefer": prefer}
        r = requests.patch(self.rest_url(table), headers=headers, params=params, json=payload, timeout=self.timeout)
        return self._decode(r, "PATCH")

    def rpc(self, fn: str, payload: dict) -> Any:
        r = requests.post(self.rpc_url(fn), headers=self.admin_headers(), json=payload, timeout=self.timeout)
        return self._decode(r, f"RPC {fn}")

    def auth_get_user(self, access_token: str) -> Optional[dict]:
        self.ensure_env_for_auth()
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token}",
        }
        r = requests.get(f"{self.url}/auth/v1/user", headers=headers, timeout=10)
        if r.status_code != 200:
            return None
        data = r.json() or {}
        user = data.get("user") or data
        if not isinstance(user, dict):
            return None
        uid = (user.get("id") or "").strip()
        if not uid:
            return None
        return {"id": uid, "email": user.get("email")}
