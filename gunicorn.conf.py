# Cricket scorer Gunicorn configuration
#
# The live match and its undo snapshot are held in process memory.
# Multiple workers would each hold their own copy, so run exactly 1 worker.

wsgi_app = "app:create_app()"
bind = "127.0.0.1:5000"
workers = 1
threads = 4
timeout = 120
