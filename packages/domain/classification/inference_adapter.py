"""
Inference Adapter - prompt contract and output validation for HS classification

Builds the classification prompt (override first, then candidate matching,
sentinel when nothing fits), calls the provider, and accepts only an
answer that reproduces a catalog 'CODE - description' line verbatim or
the unclassified sentinel. Anything else is InvalidInferenceOutput.
"""
import json
from typing import List, Optional

import structlog
from pydantic import ValidationError

from packages.domain.classification.candidates import CandidateBlock
from packages.domain.classification.catalog import CodeCatalog
from packages.domain.classification.errors import InvalidInferenceOutput
from packages.domain.classification.inference import InferenceProvider, PromptSpec
from packages.domain.classification.schemas import (
    InferenceOutput,
    Override,
    normalize_product_key,
)

logger = structlog.get_logger()

OUTPUT_NAME = "record_hs_classification"


class InferenceAdapter:
    """
    Single-item classifier on top of an InferenceProvider.

    Usage:
        adapter = InferenceAdapter(provider, catalog, sentinel="000000 - Barang")
        output = await adapter.classify(
            product_name="komputer portabel",
            product_context=None,
            candidates=build_candidates(catalog),
            override_block="[]",
        )
    """

    def __init__(
        self,
        provider: InferenceProvider,
        catalog: CodeCatalog,
        sentinel: str,
        analysis_language: str = "Bahasa Indonesia",
    ):
        self.provider = provider
        self.catalog = catalog
        self.sentinel = sentinel
        self.analysis_language = analysis_language

    async def classify(
        self,
        product_name: str,
        product_context: Optional[str],
        candidates: CandidateBlock,
        override_block: str,
    ) -> InferenceOutput:
        """
        Classify one product name against the candidate list.

        Args:
            product_name: Free-text name as entered
            product_context: Optional extra detail
            candidates: Candidate block(s) from build_candidates
            override_block: JSON array of user overrides (OverrideStore.serialize)

        Returns:
            Validated InferenceOutput

        Raises:
            InvalidInferenceOutput: Provider value breaks the output contract
            InferenceUnavailable: Provider unreachable / quota exhausted
        """
        override = self._find_override(override_block, product_name)

        prompt = PromptSpec(
            name=OUTPUT_NAME,
            system=self._build_system_prompt(),
            prompt=self._build_prompt(product_name, product_context, candidates, override_block, override),
        )

        logger.info("inference_started",
                    product=product_name,
                    has_context=bool(product_context),
                    has_priority=candidates.has_priority,
                    override_in_prompt=override is not None)

        raw = await self.provider.generate(prompt, InferenceOutput)
        output = self._validate_output(raw, product_name)

        logger.info("inference_complete",
                    product=product_name,
                    result=output.code_and_description)

        return output

    def _find_override(self, override_block: str, product_name: str) -> Optional[Override]:
        """Override in the block whose name matches product_name case-insensitively"""
        if not override_block:
            return None
        key = normalize_product_key(product_name)
        for record in json.loads(override_block):
            override = Override.model_validate(record)
            if override.key == key:
                return override
        return None

    def _build_system_prompt(self) -> str:
        return (
            "You are an expert in Harmonized System (HS) customs classification. "
            "You match a user's product name to the single most appropriate 6-digit HS code "
            "from a mandatory candidate list. You never invent codes. "
            f"Write all analysis in {self.analysis_language}."
        )

    def _build_prompt(
        self,
        product_name: str,
        product_context: Optional[str],
        candidates: CandidateBlock,
        override_block: str,
        override: Optional[Override],
    ) -> str:
        sections: List[str] = []

        if override is not None:
            entry = self.catalog.match_code(override.correct_code)
            if entry is not None:
                sections.append(
                    "PRIORITY 1 - USER-CONFIRMED OVERRIDE:\n"
                    f"A user has confirmed that \"{override.product_name}\" is classified as {entry.formatted}.\n"
                    "This is authoritative. Select exactly this entry from the candidate list and skip "
                    "further reasoning. State in the analysis that the code comes from a confirmed user correction."
                )
            else:
                # The user's code has no catalog line; only listed lines or the sentinel validate
                sections.append(
                    "PRIORITY 1 - USER-CONFIRMED OVERRIDE:\n"
                    f"A user has suggested code \"{override.correct_code}\" for \"{override.product_name}\", "
                    "but that code is not in the candidate list.\n"
                    "Select the candidate line whose code matches the user's code (ignoring dots and spaces) "
                    "if one exists. Otherwise classify normally from the candidate list, or answer "
                    f"\"{self.sentinel}\" if nothing fits. Never return \"{override.correct_code}\" itself."
                )

        steps = [
            "Interpret the product name: resolve colloquial names, abbreviations, brand and model "
            "numbers into what the product actually is.",
        ]
        if product_context:
            steps.append("Combine the product name with the additional context given below.")
        steps += [
            "Classify by function, material and industry of use.",
            "Match hierarchically (chapter, heading, subheading) against the candidate list."
            + (" Prefer the PRIORITY CANDIDATES; fall back to the FULL CANDIDATE LIST when none of "
               "them fits." if candidates.has_priority else ""),
            "Select exactly ONE entry. You MUST select from the list; never use a code that is not "
            "listed, even if you know a better one.",
            f"If no candidate is a reasonable match, answer \"{self.sentinel}\".",
            "Return code_and_description exactly as the line appears in the list "
            "(format 'CODE - Description') and a short analysis_text explaining the choice "
            f"in {self.analysis_language}.",
        ]
        sections.append(
            "INSTRUCTIONS:\n" + "\n".join(f"{i}. {step}" for i, step in enumerate(steps, 1))
        )

        sections.append(f"PRODUCT NAME:\n{product_name}")
        if product_context:
            sections.append(f"ADDITIONAL CONTEXT:\n{product_context}")

        sections.append(
            "USER OVERRIDES (productName -> correctCode; an exact case-insensitive name match is "
            f"authoritative):\n{override_block or '[]'}"
        )

        if candidates.has_priority:
            sections.append(f"PRIORITY CANDIDATES (format 'CODE - Description'):\n{candidates.priority}")
        sections.append(f"FULL CANDIDATE LIST (format 'CODE - Description'):\n{candidates.full}")

        return "\n\n".join(sections)

    def _validate_output(self, raw: object, product_name: str) -> InferenceOutput:
        try:
            output = InferenceOutput.model_validate(raw)
        except ValidationError as e:
            logger.error("inference_output_invalid",
                         product=product_name,
                         output=raw,
                         errors=e.error_count())
            raise InvalidInferenceOutput(f"Inference output does not match the result schema: {e}") from e

        if output.code_and_description != self.sentinel and \
                not self.catalog.contains_pairing(output.code_and_description):
            logger.error("inference_output_not_in_catalog",
                         product=product_name,
                         result=output.code_and_description)
            raise InvalidInferenceOutput(
                f"Inference selected {output.code_and_description!r}, which is not a catalog entry"
            )

        return output
