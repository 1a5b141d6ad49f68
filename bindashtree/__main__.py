from bindashtree.cli import app

app(prog_name="bindashtree")
