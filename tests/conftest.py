from unittest import mock

import pytest

from argo_workflows import ArgoClient
from settings import Settings


@pytest.fixture
def settings():
    return Settings(argo_url="http://argo:2746", namespace="argo", token="t0ken", page_size=20)


@pytest.fixture
def session():
    return mock.MagicMock()


@pytest.fixture
def argo(settings, session):
    return ArgoClient(settings, session=session)
