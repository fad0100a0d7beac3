"""
Django settings for the semantic matcher project.

Every value can be overridden from the environment.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'matcher-insecure-development-key')
DEBUG = os.environ.get('DJANGO_DEBUG', 'true').lower() == 'true'
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'dataset_app',
    'model_registry',
    'training_app',
    'inference_app',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('MATCHER_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

USE_TZ = True
TIME_ZONE = 'UTC'

STATIC_URL = 'static/'
MEDIA_ROOT = os.environ.get('MATCHER_MEDIA_ROOT', str(BASE_DIR / 'media'))

DATA_UPLOAD_MAX_MEMORY_SIZE = 50 * 1024 * 1024

# Semantic matcher
MATCHER_DEFAULT_SAMPLE_SIZE = int(os.environ.get('MATCHER_DEFAULT_SAMPLE_SIZE', 15))
MATCHER_TRAINING_WORKERS = int(os.environ.get('MATCHER_TRAINING_WORKERS', 2))
MATCHER_MAX_CONCURRENT_RUNS = int(os.environ.get('MATCHER_MAX_CONCURRENT_RUNS', 2))
MATCHER_PREDICTION_REPORTS = os.environ.get('MATCHER_PREDICTION_REPORTS', 'true').lower() == 'true'
MATCHER_LOG_LEVEL = os.environ.get('MATCHER_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        name: {'handlers': ['console'], 'level': MATCHER_LOG_LEVEL, 'propagate': False}
        for name in ('dataset_app', 'model_registry', 'training_app', 'inference_app', 'shared')
    },
}
