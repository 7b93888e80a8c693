"""
Sign in with Google using the OAuth2 strategy.

You'll need to set GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET,
GOOGLE_REDIRECT_URI (e.g. http://localhost:8000/auth/google) and
SESSION_SECRET (at least 32 characters), in the environment or a .env file.

Google OAuth2: https://developers.google.com/identity/protocols/oauth2/web-server
"""

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from oauth2_strategy.services.cookies import SessionCookie
from oauth2_strategy.services.flow import VerifyOptions
from oauth2_strategy.strategy import GoogleOAuth2Strategy


async def verify(options: VerifyOptions) -> dict:
    # A real app would look the user up here.
    logging.info(f"Granted scopes: {options.tokens.scopes}")
    return {
        "granted_scopes": list(options.tokens.scopes),
        "has_refresh_token": options.tokens.can_refresh(),
        "has_id_token": options.tokens.id_token is not None,
    }


async def signed_in(request: Request, user: dict) -> JSONResponse:
    return JSONResponse({"signed_in": True, "user": user})


async def home(request: Request) -> HTMLResponse:
    return HTMLResponse('<a href="/auth/google">Sign in with Google</a>')


def create_app() -> Starlette:
    strategy = GoogleOAuth2Strategy(
        client_id=os.environ["GOOGLE_CLIENT_ID"],
        client_secret=os.environ["GOOGLE_CLIENT_SECRET"],
        redirect_uri=os.environ["GOOGLE_REDIRECT_URI"],
        verify=verify,
        cookie=SessionCookie(
            os.environ["SESSION_SECRET"],
            # Plain http on localhost
            secure=os.getenv("SESSION_COOKIE_SECURE", "false") == "true",
        ),
        access_type="offline",
    )
    routes = [
        Route("/", home),
        Route(f"/auth/{strategy.name}", strategy.endpoint(signed_in, failure_url="/")),
    ]

    @asynccontextmanager
    async def lifespan(app: Starlette):
        yield
        await strategy.close()

    return Starlette(routes=routes, lifespan=lifespan)


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(create_app(), host="localhost", port=8000)
