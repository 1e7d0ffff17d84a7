"""
Celery wiring for the Flask app.

Tasks run inside an application context so they can use the models and the
app config exactly like request handlers do.
"""
from celery import Celery, Task
from flask import Flask


def celery_init_app(app: Flask) -> Celery:
    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery_app = Celery(app.import_name, task_cls=FlaskTask)
    celery_app.config_from_object(app.config["CELERY"])
    celery_app.set_default()
    app.extensions["celery"] = celery_app

    # register task modules
    import tasks.booking_tasks  # noqa: F401

    return celery_app
