import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..core.errors import ConfigurationError, missing_field
from ..schema.models import GatewayConfig

logger = logging.getLogger(__name__)


def _deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigStore:
    """
    Configuração persistida em JSON.
    Lida do disco no máximo uma vez por processo; `save` grava um arquivo
    temporário no mesmo diretório e troca com os.replace.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._cached: Optional[GatewayConfig] = None

    def load(self) -> GatewayConfig:
        if self._cached is not None:
            return self._cached

        if not self.path.exists():
            logger.info("Arquivo de configuração %s não encontrado, usando padrões", self.path)
            self._cached = GatewayConfig()
            return self._cached

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            self._cached = GatewayConfig.model_validate(raw)
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise ConfigurationError(
                "invalid_config_file",
                f"Configuração em {self.path} ilegível: {e}",
                status_code=500,
            )
        return self._cached

    def save(self, config: GatewayConfig) -> GatewayConfig:
        data = json.dumps(config.model_dump(by_alias=True, mode="json"), indent=4, ensure_ascii=False)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".config-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        self._cached = config
        logger.info("Configuração salva em %s", self.path)
        return config

    def update(self, data: Dict[str, Any]) -> GatewayConfig:
        """
        Mescla `data` na configuração atual e persiste.
        Exige empregador.nrInsc; senha "***" (vinda de GET /config) mantém a atual.
        """
        empregador = data.get("empregador") if isinstance(data.get("empregador"), dict) else {}
        if not str(empregador.get("nrInsc") or "").strip():
            raise missing_field("employerTaxId", "empregador.nrInsc")

        current = self.load().model_dump(by_alias=True, mode="json")

        certificate = data.get("certificate")
        if isinstance(certificate, dict) and certificate.get("password") == "***":
            data = dict(data, certificate={k: v for k, v in certificate.items() if k != "password"})

        try:
            merged = GatewayConfig.model_validate(_deep_merge(current, data))
        except PydanticValidationError as e:
            raise ConfigurationError("invalid_config", f"Configuração inválida: {e}")
        return self.save(merged)
