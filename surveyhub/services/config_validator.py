"""
Configuration Validator & Instance Reconciler.

verify_config() checks every survey config against the live option-set
catalogs, then brings each dependent instance's is_active / config_valid
flags into agreement with that validity and with the instance's optional
active date window.

Ordering within one run: all catalogs are fetched before any config is
judged, and every config is judged before its instances are written.
Per-field violations are collected, never raised; a failed instance write
becomes a warning and the sweep carries on.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from surveyhub.core.config import settings
from surveyhub.core.timeutils import now_utc
from surveyhub.schemas.option_set import OptionSetOut
from surveyhub.schemas.survey import (
    FieldType,
    InstanceStatusChangeCreate,
    SurveyConfigOut,
    SurveyField,
    SurveyInstanceOut,
    SurveyInstanceUpdate,
)
from surveyhub.schemas.validation import ValidationSummary

logger = logging.getLogger(__name__)

VALIDATOR_ACTOR = "config-validator"


@dataclass
class OptionSetCatalogs:
    ratings: Dict[str, OptionSetOut] = field(default_factory=dict)
    radios: Dict[str, OptionSetOut] = field(default_factory=dict)
    selects: Dict[str, OptionSetOut] = field(default_factory=dict)
    multi_selects: Dict[str, OptionSetOut] = field(default_factory=dict)

    @classmethod
    def from_lists(cls, ratings: Iterable[OptionSetOut] = (), radios: Iterable[OptionSetOut] = (),
                   selects: Iterable[OptionSetOut] = (), multi_selects: Iterable[OptionSetOut] = ()) -> "OptionSetCatalogs":
        return cls(
            ratings={item.id: item for item in ratings},
            radios={item.id: item for item in radios},
            selects={item.id: item for item in selects},
            multi_selects={item.id: item for item in multi_selects},
        )


# field type -> (reference attribute, catalog attribute, catalog label)
CHOICE_REFERENCES = {
    FieldType.RADIO.value: ("radio_option_set_id", "radios", "Radio option set"),
    FieldType.SELECT.value: ("select_option_set_id", "selects", "Select option set"),
    FieldType.MULTISELECT.value: ("multi_select_option_set_id", "multi_selects", "Multi-select option set"),
    "multi-select": ("multi_select_option_set_id", "multi_selects", "Multi-select option set"),
}


def _validate_field(survey_field: SurveyField, path: str, catalogs: OptionSetCatalogs) -> List[str]:
    errors: List[str] = []
    label = survey_field.label or survey_field.id or "Unnamed field"
    prefix = f'{path} > Field "{label}"'

    if not survey_field.type:
        errors.append(f"{prefix}: Field type is required")
    if not (survey_field.label or survey_field.id):
        errors.append(f"{prefix}: Field label or id is required")

    field_type = (survey_field.type or "").lower()
    if field_type == FieldType.RATING.value:
        scale_id = survey_field.rating_scale_id
        if scale_id and scale_id not in catalogs.ratings:
            errors.append(f'{prefix}: Rating scale "{scale_id}" not found')

    elif field_type in CHOICE_REFERENCES:
        attr, catalog_attr, catalog_label = CHOICE_REFERENCES[field_type]
        reference = getattr(survey_field, attr)
        has_inline = bool(survey_field.options)
        if reference:
            if reference not in getattr(catalogs, catalog_attr) and not has_inline:
                errors.append(f'{prefix}: {catalog_label} "{reference}" not found')
        elif not has_inline:
            errors.append(f"{prefix}: Field requires inline options or a {catalog_label.lower()} reference")

    return errors


def validate_survey_config(config: SurveyConfigOut, catalogs: OptionSetCatalogs) -> List[str]:
    """Return every violation in the config, in order, without duplicates. Empty means valid."""
    errors: List[str] = []
    title = config.title or config.id

    for index, section in enumerate(config.sections, start=1):
        section_name = section.title or section.id or f"Section {index}"
        path = f'Config "{title}" > Section "{section_name}"'

        field_count = len(section.fields) + sum(len(sub.fields) for sub in section.subsections)
        if field_count == 0:
            errors.append(f"{path}: Section must contain at least one field")

        for survey_field in section.fields:
            errors.extend(_validate_field(survey_field, path, catalogs))

        for sub_index, subsection in enumerate(section.subsections, start=1):
            sub_name = subsection.title or subsection.id or f"Subsection {sub_index}"
            sub_path = f'{path} > Subsection "{sub_name}"'
            for survey_field in subsection.fields:
                errors.extend(_validate_field(survey_field, sub_path, catalogs))

    return list(dict.fromkeys(errors))


class ConfigValidator:
    def __init__(self, helpers, settle_seconds: Optional[float] = None,
                 clock: Callable[[], datetime] = now_utc):
        self._helpers = helpers
        self._settle_seconds = settle_seconds if settle_seconds is not None else settings.validation_settle_seconds
        self._clock = clock

    async def verify_config(self, silent: bool = False) -> ValidationSummary:
        # Straight from the store; any failure here aborts the run
        configs, instances, ratings, radios, selects, multi_selects = await asyncio.gather(
            self._helpers.get_survey_configs(),
            self._helpers.get_survey_instances(),
            self._helpers.get_rating_scales(),
            self._helpers.get_radio_option_sets(),
            self._helpers.get_select_option_sets(),
            self._helpers.get_multi_select_option_sets(),
        )
        catalogs = OptionSetCatalogs.from_lists(ratings, radios, selects, multi_selects)

        instances_by_config: Dict[str, List[SurveyInstanceOut]] = defaultdict(list)
        for instance in instances:
            instances_by_config[instance.config_id].append(instance)

        summary = ValidationSummary(total_configs=len(configs), total_instances=len(instances))

        verdicts = []
        for config in configs:
            errors = validate_survey_config(config, catalogs)
            verdicts.append((config, not errors))
            summary.errors.extend(errors)
        summary.errors = list(dict.fromkeys(summary.errors))

        now = self._clock()
        for config, is_valid in verdicts:
            dependents = instances_by_config.get(config.id, [])
            if is_valid:
                summary.valid_configs += 1
                for instance in dependents:
                    await self._reconcile_valid(instance, now, summary)
            else:
                summary.invalid_configs += 1
                logger.warning("Config %s (%s) is invalid; reconciling %s instance(s)",
                               config.title, config.id, len(dependents))
                for instance in dependents:
                    await self._reconcile_invalid(instance, summary)

        if not silent and summary.deactivated_instances > 0:
            # Let the just-issued writes land before the caller re-reads
            await asyncio.sleep(self._settle_seconds)

        logger.info(
            "Config verification finished: %s/%s valid, %s reactivated, %s deactivated, %s error(s), %s warning(s)",
            summary.valid_configs, summary.total_configs, summary.reactivated_instances,
            summary.deactivated_instances, len(summary.errors), len(summary.warnings),
        )
        return summary

    async def _reconcile_valid(self, instance: SurveyInstanceOut, now: datetime, summary: ValidationSummary) -> None:
        window = instance.active_date_range

        if window is not None and window.contains(now) and not instance.is_active:
            reason = "date_window_activation"
        elif window is None and not instance.is_active and not instance.config_valid:
            reason = "config_valid_reactivated"
        else:
            # Eligible for future date-driven activation; is_active stays as the admin left it
            if not instance.config_valid or instance.validation_in_progress:
                await self._write(instance, SurveyInstanceUpdate(config_valid=True, validation_in_progress=False),
                                  summary)
            return

        changes = SurveyInstanceUpdate(is_active=True, config_valid=True, validation_in_progress=False)
        if await self._write(instance, changes, summary):
            summary.reactivated_instances += 1
            await self._record(instance, True, reason, summary)

    async def _reconcile_invalid(self, instance: SurveyInstanceOut, summary: ValidationSummary) -> None:
        if instance.is_active:
            changes = SurveyInstanceUpdate(is_active=False, config_valid=False)
            if await self._write(instance, changes, summary):
                summary.deactivated_instances += 1
                await self._record(instance, False, "config_invalid", summary)
        elif instance.config_valid or not instance.validation_in_progress:
            # Keeps date automation from switching it back on mid-reconciliation
            await self._write(instance, SurveyInstanceUpdate(config_valid=False, validation_in_progress=True), summary)

    async def _write(self, instance: SurveyInstanceOut, changes: SurveyInstanceUpdate,
                     summary: ValidationSummary) -> bool:
        changes.metadata = {"updated_by": VALIDATOR_ACTOR}
        try:
            await self._helpers.update_survey_instance(instance.id, changes)
            return True
        except Exception as e:
            logger.warning("Failed to update instance %s: %s", instance.id, e)
            summary.warnings.append(f'Failed to update instance "{instance.title}" ({instance.id}): {e}')
            return False

    async def _record(self, instance: SurveyInstanceOut, new_status: bool, reason: str,
                      summary: ValidationSummary) -> None:
        try:
            await self._helpers.add_instance_status_change(InstanceStatusChangeCreate(
                instance_id=instance.id,
                old_status=instance.is_active,
                new_status=new_status,
                reason=reason,
                changed_by=VALIDATOR_ACTOR,
            ))
        except Exception as e:
            summary.warnings.append(f'Failed to record status change for instance "{instance.title}" ({instance.id}): {e}')
