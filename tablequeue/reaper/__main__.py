from tablequeue.reaper.main import run

run()
