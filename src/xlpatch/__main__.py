from xlpatch.cli import app

app()
