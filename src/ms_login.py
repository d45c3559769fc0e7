"""
Module      : ms_login
Date        : 2026-10-19
Version     : 1.1.0
Author      : tompsg-git
Description : Microsoft-Anmeldung über MSAL. TokenProvider liefert ein
              Access-Token: zuerst still aus dem Token-Cache, sonst über einen
              interaktiven Flow (Device-Code oder Browser). Der serialisierte
              MSAL-Cache liegt in einer JSON-Datei neben der config.json und
              wird vor jeder Anmeldung gelesen und nur bei Änderungen
              zurückgeschrieben. Kann direkt als Skript verwendet werden.
"""

import logging
import os
import sys
import threading
import webbrowser

import msal

from utils import resolve_path

log = logging.getLogger(__name__)

DEFAULT_CLIENT_ID = "1950a258-227b-4e31-a9cf-717495945fc2"
DEFAULT_TENANT_ID = "consumers"
DEFAULT_CACHE_FILE = "ms_token_cache.json"
SCOPES = ["Tasks.ReadWrite"]

FLOW_DEVICE = "device"
FLOW_BROWSER = "browser"


class AuthError(RuntimeError):
    """Raised when no access token could be acquired."""


class LoginRequired(AuthError):
    """Raised in silent-only mode when no cached account yields a token."""


class TokenProvider:
    """Acquires Graph access tokens through MSAL and persists its token cache."""

    def __init__(self, config: dict, config_path: str = "config.json", on_code=None):
        self.client_id = config.get("ms_client_id") or DEFAULT_CLIENT_ID
        self.tenant_id = config.get("ms_tenant_id") or DEFAULT_TENANT_ID
        self.scopes = list(config.get("ms_scopes") or SCOPES)
        self.auth_flow = config.get("ms_auth_flow", FLOW_DEVICE)
        self.open_browser = bool(config.get("ms_open_browser", False))
        self.cache_path = resolve_path(
            config.get("ms_token_cache_file", DEFAULT_CACHE_FILE), config_path
        )
        self.on_code = on_code

        if self.auth_flow not in (FLOW_DEVICE, FLOW_BROWSER):
            raise ValueError(
                f"Ungültiger ms_auth_flow '{self.auth_flow}' — erlaubt: device, browser"
            )

        self._lock = threading.Lock()
        self._cache = msal.SerializableTokenCache()
        self._app = msal.PublicClientApplication(
            client_id=self.client_id,
            authority=f"https://login.microsoftonline.com/{self.tenant_id}",
            token_cache=self._cache,
        )

    # ------------------------------------------------------------------
    # Cache persistence
    # ------------------------------------------------------------------

    def _load_cache(self):
        if os.path.exists(self.cache_path):
            with open(self.cache_path) as f:
                self._cache.deserialize(f.read())
            log.debug("Token-Cache geladen: %s", self.cache_path)

    def _persist_cache(self):
        if not self._cache.has_state_changed:
            return
        os.makedirs(os.path.dirname(self.cache_path) or ".", exist_ok=True)
        with open(self.cache_path, "w") as f:
            f.write(self._cache.serialize())
        log.debug("Token-Cache gespeichert: %s", self.cache_path)

    # ------------------------------------------------------------------
    # Token acquisition
    # ------------------------------------------------------------------

    def get_access_token(self, interactive: bool = True) -> str:
        """Return a bearer token, silently if possible, interactively otherwise.

        With ``interactive=False`` no login flow is started; ``LoginRequired``
        is raised instead.
        """
        with self._lock:
            self._load_cache()
            try:
                accounts = self._app.get_accounts()
                if not accounts:
                    if not interactive:
                        raise LoginRequired("Kein Konto im Token-Cache — Anmeldung erforderlich.")
                    log.info("Kein Konto im Token-Cache — interaktive Anmeldung.")
                    return self._acquire_interactive()
                return self._acquire_by_cache(accounts[0], interactive)
            finally:
                self._persist_cache()

    def _acquire_by_cache(self, account: dict, interactive: bool = True) -> str:
        try:
            result = self._app.acquire_token_silent(self.scopes, account=account)
        except Exception as e:
            log.warning("Stille Token-Erneuerung fehlgeschlagen (%s).", e)
            result = None
        if result and "access_token" in result:
            return result["access_token"]
        if result:
            log.warning("Stille Token-Erneuerung fehlgeschlagen (%s).",
                        result.get("error_description", "unknown"))
        if not interactive:
            raise LoginRequired("Stille Anmeldung fehlgeschlagen — Anmeldung erforderlich.")
        log.info("Falle auf interaktive Anmeldung zurück.")
        return self._acquire_interactive()

    def _acquire_interactive(self) -> str:
        if self.auth_flow == FLOW_BROWSER:
            result = self._app.acquire_token_interactive(
                scopes=self.scopes, prompt="select_account"
            )
        else:
            flow = self._app.initiate_device_flow(scopes=self.scopes)
            if "user_code" not in flow:
                raise AuthError(f"Device flow failed: {flow.get('error_description')}")
            self._show_device_code(flow)
            result = self._app.acquire_token_by_device_flow(flow)
        return self._access_token_from(result)

    def _show_device_code(self, flow: dict):
        user_code = flow["user_code"]
        verification_uri = flow.get("verification_uri", "https://microsoft.com/devicelogin")
        if self.on_code:
            self.on_code(user_code, verification_uri)
            return

        print("\n" + "=" * 60)
        print("Microsoft To Do — Authentifizierung erforderlich")
        print("=" * 60)
        print(flow["message"])
        print("=" * 60 + "\n")
        if self.open_browser:
            webbrowser.open(f"{verification_uri}?user_code={user_code}")

    @staticmethod
    def _access_token_from(result: dict) -> str:
        if not result or "access_token" not in result:
            error = (result or {}).get("error_description", "no access token returned")
            raise AuthError(f"Authentifizierung fehlgeschlagen: {error}")
        log.info("MS Login erfolgreich.")
        return result["access_token"]

    # ------------------------------------------------------------------
    # Redirect flow (web)
    # ------------------------------------------------------------------

    def start_auth_code_flow(self, redirect_uri: str) -> dict:
        """Begin a browser redirect login; the returned flow carries ``auth_uri``."""
        return self._app.initiate_auth_code_flow(
            self.scopes, redirect_uri=redirect_uri, prompt="select_account"
        )

    def finish_auth_code_flow(self, flow: dict, auth_response: dict) -> str:
        """Redeem the redirect's query parameters for a token.

        Raises ``ValueError`` (from MSAL) when the response does not belong
        to ``flow``.
        """
        with self._lock:
            self._load_cache()
            try:
                result = self._app.acquire_token_by_auth_code_flow(flow, auth_response)
                return self._access_token_from(result)
            finally:
                self._persist_cache()

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_accounts(self) -> list:
        with self._lock:
            self._load_cache()
            return self._app.get_accounts()

    def logout(self):
        """Remove every cached account and delete the cache file."""
        with self._lock:
            self._load_cache()
            for account in self._app.get_accounts():
                log.info("Entferne Konto %s", account.get("username"))
                self._app.remove_account(account)
            if os.path.exists(self.cache_path):
                os.remove(self.cache_path)
                log.info("Token-Cache gelöscht: %s", self.cache_path)


def run_device_flow(config: dict, config_path: str, on_code=None) -> str:
    """Führt eine explizite Anmeldung durch und speichert den Token-Cache.

    Args:
        config:      Geladenes config.json als dict.
        config_path: Pfad zur config.json (für relative Cache-Datei-Auflösung).
        on_code:     Optionaler Callback(user_code, verification_uri), der aufgerufen
                     wird, sobald der Gerätecode bekannt ist. Fehlt er, wird die
                     Nachricht auf stdout ausgegeben.

    Returns:
        Das Access-Token als String.
    """
    provider = TokenProvider(config, config_path, on_code=on_code)
    return provider.get_access_token()


def main():
    import argparse

    from utils import load_config, setup_logging

    setup_logging()
    parser = argparse.ArgumentParser(description="Microsoft To Do Login")
    parser.add_argument(
        "--config",
        default=os.environ.get("CONFIG_PATH", "config.json"),
    )
    parser.add_argument("--browser", action="store_true", help="Browser- statt Device-Code-Flow")
    args = parser.parse_args()

    cfg = load_config(args.config, optional=True)
    if args.browser:
        cfg["ms_auth_flow"] = FLOW_BROWSER
    try:
        run_device_flow(cfg, args.config)
    except AuthError as e:
        log.error("%s", e)
        sys.exit(1)
    print("\n Login erfolgreich abgeschlossen!\n")


if __name__ == "__main__":
    main()
