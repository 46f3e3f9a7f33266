from app.champion import create_app

app = create_app()
