from .routes_translate import router as translate_router


def register_routes(app):
    """Attach every API router to ``app``."""
    app.include_router(translate_router)
