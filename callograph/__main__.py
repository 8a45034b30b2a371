from callograph.cli import app

app()
