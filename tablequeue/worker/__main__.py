from tablequeue.worker.main import run

run()
