"""
ASGI entry point for the Storefront Analytics API.

    uvicorn storefront_analytics.main:app
"""

from storefront_analytics.serving import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn

    from storefront_analytics.config import get_settings

    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
