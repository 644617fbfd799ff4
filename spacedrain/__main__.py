from spacedrain.cli import run

run()
