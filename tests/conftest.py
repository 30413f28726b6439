import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from packages.domain.classification.catalog import CodeCatalog
from packages.domain.classification.engine import assemble_engine
from packages.domain.classification.inference import PromptSpec
from packages.domain.classification.override_store import InMemoryOverrideBackend, OverrideStore

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
SENTINEL = "000000 - Barang"

SAMPLE_RECORDS = [
    {"code": "010221", "description": "Sapi hidup, bibit ternak murni"},
    {"code": "010229", "description": "Sapi hidup, selain bibit ternak murni"},
    {"code": "382200", "description": "Reagen diagnosa atau laboratorium"},
    {"code": "847130", "description": "Mesin pengolah data otomatis portabel, beratnya tidak melebihi 10 kg"},
    {"code": "851713", "description": "Telepon pintar"},
    {"code": "902511", "description": "Termometer berisi cairan, untuk pembacaan langsung"},
]

Response = Union[Dict[str, Any], Exception]


def product_from_prompt(prompt: PromptSpec) -> str:
    """Product name as rendered in the PRODUCT NAME section"""
    return prompt.prompt.split("PRODUCT NAME:\n", 1)[1].split("\n\n", 1)[0]


class FakeProvider:
    """
    Scripted InferenceProvider.

    responses maps product name -> dict to return or exception to raise;
    unknown names get the sentinel. delays (seconds) reorder completions.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, Response]] = None,
        delays: Optional[Dict[str, float]] = None,
        responder: Optional[Callable[[PromptSpec], Response]] = None,
    ):
        self.responses = responses or {}
        self.delays = delays or {}
        self.responder = responder
        self.prompts: List[PromptSpec] = []
        self.configured = True

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt, output_schema):
        self.prompts.append(prompt)
        product = product_from_prompt(prompt)

        delay = self.delays.get(product)
        if delay:
            await asyncio.sleep(delay)

        if self.responder is not None:
            response = self.responder(prompt)
        else:
            response = self.responses.get(product, {
                "analysis_text": "Tidak ada kode yang cocok.",
                "code_and_description": SENTINEL,
            })

        if isinstance(response, Exception):
            raise response
        return response


def answer(code_and_description: str, analysis: str = "Dipilih berdasarkan fungsi barang.") -> Dict[str, str]:
    return {"analysis_text": analysis, "code_and_description": code_and_description}


@pytest.fixture
def catalog() -> CodeCatalog:
    return CodeCatalog.from_records(SAMPLE_RECORDS)


@pytest.fixture
def backend() -> InMemoryOverrideBackend:
    return InMemoryOverrideBackend()


@pytest.fixture
def store(backend) -> OverrideStore:
    return OverrideStore(backend)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def engine(catalog, backend, provider):
    return assemble_engine(
        catalog=catalog,
        backend=backend,
        provider=provider,
        sentinel=SENTINEL,
    )
