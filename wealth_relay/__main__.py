from wealth_relay.main import run

run()
