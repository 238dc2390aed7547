from app.erm import create_app

app = create_app()
