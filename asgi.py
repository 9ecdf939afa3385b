"""
asgi.py -- The deployable QuizMaker app: JSON API plus server-rendered pages.

api/main.py builds the FastAPI app, its middleware (including the request
gate) and the /api/v1 routes. web/routes.py holds the login, signup and
dashboard pages. Only this module imports both.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.routes import router as web_router

# Page routes share app.state (and so the same AuthService) with the API.
app.include_router(web_router, tags=["Web UI"])
