"""
Minimal Django settings for running the Farmstock test suite.
"""

SECRET_KEY = 'farmstock-tests'

DEBUG = True

USE_TZ = True
TIME_ZONE = 'UTC'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'farmstock',
]

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

FARMSTOCK = {
    'MAX_TRANSACTION_ATTEMPTS': 3,
}

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]
