from trace_lab.cli import app

app()
