"""uvicorn entrypoint: `uvicorn main:app --reload` from apps/api.

The app is built here rather than in devcollab.app so importing the package
never requires DATABASE_URL or JWT_SECRET to be set.
"""

from devcollab.app import create_app

app = create_app()

__all__ = ["app"]
