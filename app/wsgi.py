from app.menfem import create_app

app = create_app()
