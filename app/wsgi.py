from app.academia import create_app

app = create_app()
