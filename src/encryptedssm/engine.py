"""Reconcile one encrypted SSM parameter against its declaration.

Create and update share :meth:`ParameterReconciler.put`; both end with a full
:meth:`~ParameterReconciler.read` so that computed fields (ARN, version, tier
chosen by SSM, ...) come from AWS rather than from the declaration.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from botocore.exceptions import BotoCoreError, ClientError

from encryptedssm.comparator import decrypt_value, observed_encrypted_value
from encryptedssm.errors import (
    ParameterDeleteError,
    ParameterReadError,
    ParameterWriteError,
    RetryTimeoutError,
    is_aws_error,
)
from encryptedssm.models import DATA_TYPE_EC2_IMAGE, TIER_STANDARD, ParameterRecord
from encryptedssm.retry import retry_until_deadline
from encryptedssm.tags import PARAMETER_RESOURCE_TYPE, TagSet, list_tags, update_tags

if TYPE_CHECKING:
    from encryptedssm.clients import AWSClients
    from encryptedssm.state import ResourceState

logger = logging.getLogger(__name__)

# Maximum time to wait for SSM's asynchronous validation of a new parameter.
CREATION_VALIDATION_TIMEOUT = 120.0

PARAMETER_NOT_FOUND = "ParameterNotFound"


def should_overwrite(state: ResourceState) -> bool:
    """Return the Overwrite flag for PutParameter.

    An explicit ``overwrite`` wins. Otherwise a brand-new declaration must not
    clobber a parameter that already exists in SSM, while an update of a
    managed parameter overwrites it.
    """
    if state.desired.overwrite is not None:
        return state.desired.overwrite
    return not state.is_new_resource


def pending_validation(is_new_resource: bool, data_type: str | None) -> Callable[[Exception], bool]:
    """Retry predicate: not-found on a new ``aws:ec2:image`` parameter is SSM still validating it."""

    def is_retryable(exc: Exception) -> bool:
        return (
            is_new_resource
            and data_type == DATA_TYPE_EC2_IMAGE
            and is_aws_error(exc, PARAMETER_NOT_FOUND)
        )

    return is_retryable


class ParameterReconciler:
    """Drive SSM and KMS so that one parameter matches its declaration.

    Args:
        clients: The SSM/KMS client bundle plus tag-ignore settings.
        validation_timeout: Window for the post-create read retry.
        sleep: Injected into the retry loop; tests pass a no-op.
    """

    def __init__(
        self,
        clients: AWSClients,
        validation_timeout: float = CREATION_VALIDATION_TIMEOUT,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.ssm = clients.ssm
        self.kms = clients.kms
        self.ignore_tags = clients.ignore_tags
        self.validation_timeout = validation_timeout
        self._retry_kwargs: dict[str, Any] = {}
        if sleep is not None:
            self._retry_kwargs["sleep"] = sleep
        if clock is not None:
            self._retry_kwargs["clock"] = clock

    # -- put -----------------------------------------------------------

    def put(self, state: ResourceState) -> None:
        """Create or update the parameter, reconcile its tags, then read it back.

        Raises:
            MalformedCiphertextError: ``encrypted_value`` is not base64.
            DecryptionError: KMS could not decrypt the declaration.
            ParameterWriteError: PutParameter failed.
            TagUpdateError: The value was written but tagging failed.
            ParameterReadError: The trailing read failed.
        """
        record = state.desired
        logger.info("Creating SSM Parameter: %s", record.name)

        plaintext = decrypt_value(self.kms, record.encryption_key, record.encrypted_value)

        put_kwargs: dict[str, Any] = {
            "Name": record.name,
            "Type": record.type,
            "Tier": record.tier,
            "Value": plaintext,
            "Overwrite": should_overwrite(state),
            "KeyId": record.encryption_key,
        }
        if record.allowed_pattern or state.has_change("allowed_pattern"):
            put_kwargs["AllowedPattern"] = record.allowed_pattern
        if record.data_type:
            put_kwargs["DataType"] = record.data_type
        if state.has_change("description"):
            put_kwargs["Description"] = record.description

        logger.debug("Waiting for SSM Parameter %s to be updated", record.name)
        try:
            try:
                self.ssm.put_parameter(**put_kwargs)
            except ClientError as exc:
                if not is_aws_error(exc, "ValidationException", "Tier is not supported"):
                    raise
                logger.warning(
                    "Tier %s not supported for %s, retrying with the default tier",
                    record.tier,
                    record.name,
                )
                del put_kwargs["Tier"]
                self.ssm.put_parameter(**put_kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise ParameterWriteError(record.name, "PutParameter", exc) from exc

        if state.has_change("tags"):
            old, new = state.get_change("tags")
            update_tags(
                self.ssm,
                record.name,
                PARAMETER_RESOURCE_TYPE,
                TagSet.from_map(old),
                TagSet.from_map(new),
            )

        state.id = record.name
        self.read(state)

    # -- read ----------------------------------------------------------

    def _get_parameter(self, name: str) -> dict[str, Any]:
        return self.ssm.get_parameter(Name=name, WithDecryption=True)

    def read(self, state: ResourceState) -> None:
        """Refresh ``state.observed`` from SSM.

        A managed parameter that no longer exists clears ``state.id`` and
        returns normally. A new parameter that cannot be found is an error.

        Raises:
            ParameterReadError: Any SSM read failed.
            MalformedCiphertextError: The declared ``encrypted_value`` is not base64.
            DecryptionError: KMS failed for a reason other than a key/blob mismatch.
        """
        desired = state.desired
        identifier = state.id
        logger.debug("Reading SSM Parameter: %s", identifier)

        try:
            try:
                response = retry_until_deadline(
                    lambda: self._get_parameter(identifier),
                    pending_validation(state.is_new_resource, desired.data_type),
                    self.validation_timeout,
                    **self._retry_kwargs,
                )
            except RetryTimeoutError:
                response = self._get_parameter(identifier)
        except (ClientError, BotoCoreError) as exc:
            if is_aws_error(exc, PARAMETER_NOT_FOUND) and not state.is_new_resource:
                logger.warning("SSM Parameter (%s) not found, removing from state", identifier)
                state.clear()
                return
            raise ParameterReadError(identifier, "GetParameter", exc) from exc

        param = response["Parameter"]
        name = param["Name"]
        encrypted_value = observed_encrypted_value(
            self.kms, desired.encryption_key, desired.encrypted_value, param.get("Value", "")
        )

        try:
            described = self.ssm.describe_parameters(
                ParameterFilters=[{"Key": "Name", "Option": "Equals", "Values": [name]}]
            )
        except (ClientError, BotoCoreError) as exc:
            raise ParameterReadError(name, "DescribeParameters", exc) from exc

        details = described.get("Parameters") or []
        if not details:
            # GetParameter and DescribeParameters can briefly disagree; treat as gone.
            logger.warning("SSM Parameter %r not found, removing from state", identifier)
            state.clear()
            return
        detail = details[0]

        try:
            tags = list_tags(self.ssm, name, PARAMETER_RESOURCE_TYPE)
        except (ClientError, BotoCoreError) as exc:
            raise ParameterReadError(name, "ListTagsForResource", exc) from exc

        state.observed = ParameterRecord(
            name=name,
            type=param.get("Type", desired.type),
            encrypted_value=encrypted_value,
            encryption_key=desired.encryption_key,
            description=detail.get("Description", ""),
            tier=detail.get("Tier") or TIER_STANDARD,
            data_type=detail.get("DataType") or param.get("DataType"),
            overwrite=desired.overwrite,
            allowed_pattern=detail.get("AllowedPattern", ""),
            tags=tags.ignore_aws().ignore_config(self.ignore_tags).to_map(),
            arn=param.get("ARN", ""),
            version=param.get("Version", 0),
            key_id=detail.get("KeyId", ""),
        )

    # -- delete --------------------------------------------------------

    def delete(self, state: ResourceState) -> None:
        """Delete the parameter. A parameter that is already gone is still an error.

        Raises:
            ParameterDeleteError: DeleteParameter failed.
        """
        name = state.desired.name
        logger.info("Deleting SSM Parameter: %s", state.id or name)
        try:
            self.ssm.delete_parameter(Name=name)
        except (ClientError, BotoCoreError) as exc:
            raise ParameterDeleteError(state.id or name, "DeleteParameter", exc) from exc
        state.clear()
