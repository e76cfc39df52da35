from app.halfride import create_app

app = create_app()
