"""
Limpeza estrutural de payloads.

`prune` remove folhas nulas/vazias e os containers que ficaram vazios por
causa dessa remoção. Containers que o cliente já enviou vazios, `0` e `False`
são preservados: quem decide descartá-los é a declaração de campos opcionais
de cada tipo de evento (`drop_empty_optionals`).
"""
from typing import Any, Iterable


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _prune_value(value: Any):
    """Retorna (valor_limpo, descartar)."""
    if isinstance(value, dict):
        cleaned = _prune_mapping(value)
        return cleaned, bool(value) and not cleaned
    if isinstance(value, list):
        cleaned = _prune_sequence(value)
        return cleaned, bool(value) and not cleaned
    return value, _is_blank(value)


def _prune_mapping(tree: dict) -> dict:
    out = {}
    for key, value in tree.items():
        cleaned, drop = _prune_value(value)
        if not drop:
            out[key] = cleaned
    return out


def _prune_sequence(items: list) -> list:
    out = []
    for value in items:
        cleaned, drop = _prune_value(value)
        if not drop:
            out.append(cleaned)
    return out


def prune(tree: Any) -> Any:
    """Devolve uma cópia limpa de `tree`. Idempotente."""
    cleaned, _ = _prune_value(tree)
    return cleaned


def _is_empty(value: Any) -> bool:
    return _is_blank(value) or (isinstance(value, (dict, list)) and not value)


def drop_empty_optionals(tree: dict, paths: Iterable[str]) -> dict:
    """
    Remove, in place, cada caminho pontuado ("endereco.brasil.bairro") cujo
    valor seja None, "", [] ou {}. Caminhos inexistentes são ignorados.
    """
    for path in paths:
        *parents, leaf = path.split(".")
        node = tree
        for part in parents:
            node = node.get(part) if isinstance(node, dict) else None
            if node is None:
                break
        if isinstance(node, dict) and leaf in node and _is_empty(node[leaf]):
            del node[leaf]
    return tree
