#======================================================================================================
#
#   GOOGLE OAUTH HELPERS: authorization URL, code exchange and find-or-create of the local user
#
#======================================================================================================
import logging
from urllib.parse import urlencode

import requests
from flask import current_app

from errors import UpstreamFailure
from extensions import db
from logger import app_logger
from models import User, Role
from utils import utcnow


logger = logging.getLogger(__name__)


def build_auth_url(redirect_uri=None):
    """Vendor authorization URL with the fixed `profile email` scope."""
    cfg = current_app.config
    params = {
        "client_id": cfg["GOOGLE_CLIENT_ID"],
        "redirect_uri": redirect_uri or cfg["GOOGLE_CALLBACK_URL"],
        "response_type": "code",
        "scope": " ".join(cfg["GOOGLE_SCOPES"]),
    }
    return f"{cfg['GOOGLE_AUTH_URL']}?{urlencode(params)}"


def exchange_code(code, redirect_uri):
    """Trade the authorization code for an access token."""
    cfg = current_app.config
    try:
        response = requests.post(
            cfg["GOOGLE_TOKEN_URL"],
            data={
                "code": code,
                "client_id": cfg["GOOGLE_CLIENT_ID"],
                "client_secret": cfg["GOOGLE_CLIENT_SECRET"],
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
            timeout=cfg["REQUEST_TIMEOUT_SECONDS"],
        )
        response.raise_for_status()
        access_token = response.json().get("access_token")
    except requests.exceptions.RequestException as e:
        logger.error(f"Google token exchange failed: {e}")
        raise UpstreamFailure("Google token exchange failed")
    except ValueError:
        raise UpstreamFailure("Google token response was not JSON")

    if not access_token:
        raise UpstreamFailure("Google token response had no access token")
    return access_token


def fetch_profile(access_token):
    cfg = current_app.config
    try:
        response = requests.get(
            cfg["GOOGLE_USERINFO_URL"],
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=cfg["REQUEST_TIMEOUT_SECONDS"],
        )
        response.raise_for_status()
        profile = response.json()
    except requests.exceptions.RequestException as e:
        logger.error(f"Google userinfo request failed: {e}")
        raise UpstreamFailure("Google userinfo request failed")
    except ValueError:
        raise UpstreamFailure("Google userinfo response was not JSON")

    if not profile.get("id") or not profile.get("email"):
        raise UpstreamFailure("Google profile is missing id or email")
    return profile


def is_admin_email(email, verified):
    return bool(verified) and email.lower() in current_app.config.get("ADMIN_EMAILS", [])


def find_or_create_user(profile):
    """
    Match by Google id, then by email (linking the Google id), else create.
    Profile fields and last_login are refreshed on every login.
    Returns (user, created).
    """
    google_id = str(profile["id"])
    email = profile["email"].strip().lower()
    verified = bool(profile.get("verified_email", False))
    created = False

    user = User.query.filter_by(google_id=google_id).first()
    if not user:
        user = User.query.filter_by(email=email).first()
        if user:
            logger.info(f"Linking Google account to existing user {user.id}")
            user.google_id = google_id
        else:
            user = User(google_id=google_id, email=email, role=Role.USER.value)
            db.session.add(user)
            created = True

    user.display_name = profile.get("name") or user.display_name
    user.first_name = profile.get("given_name") or user.first_name
    user.last_name = profile.get("family_name") or user.last_name
    user.picture = profile.get("picture") or user.picture
    user.email_verified = verified or bool(user.email_verified)
    user.last_login = utcnow()

    if is_admin_email(email, verified):
        user.role = Role.ADMIN.value

    db.session.commit()
    if created:
        app_logger.info(f"New account {user.id} signed up with Google ({user.email})")
    app_logger.info(f"User {user.id} logged in with Google as {user.role}")
    return user, created


def complete_login(code, redirect_uri):
    access_token = exchange_code(code, redirect_uri)
    profile = fetch_profile(access_token)
    return find_or_create_user(profile)
