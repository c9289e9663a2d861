"""Tests for service wiring."""
from faceguard.core.container import ServiceContainer
from tests.conftest import StubEngine


class TestServiceContainer:
    async def test_initialize_preloads_models(self):
        engine = StubEngine()
        cont = ServiceContainer(engine=engine)

        await cont.initialize()
        assert cont.initialized
        assert await cont.model_loader.ensure_loaded()
        assert cont.recognition_service.detector is engine
        assert cont.monitor.store is cont.descriptor_store

        await cont.cleanup()
        assert not cont.initialized
        assert cont.model_loader is None

    async def test_initialize_without_preload(self):
        engine = StubEngine()
        cont = ServiceContainer(engine=engine)

        await cont.initialize(preload=False)
        assert sum(engine.critical_calls.values()) == 0
        await cont.cleanup()
