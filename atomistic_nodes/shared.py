from __future__ import annotations

from abc import ABC
from copy import copy
import logging
from typing import Literal

logger = logging.getLogger(__name__)


class DelayedInstantiator(ABC):
    """
    Many ASE objects are awkward to pass around a graph of nodes: calculators start
    writing input files as soon as they exist, they get glued onto a particular
    :class:`ase.Atoms` instance, and some of their settings (pseudopotentials,
    band counts, k-points) can only be validated once we know the structure.

    Instead of passing live objects between nodes we pass one of these, which holds
    the class together with its arguments and only builds the object right before a
    calculation needs it.
    """
    def __init__(self, cls: type, cls_args: tuple = (), cls_kwargs: dict | None = None):
        self.cls = cls
        self.cls_args = cls_args
        self.cls_kwargs = {} if cls_kwargs is None else cls_kwargs

    def __repr__(self):
        return (
            f"{self.__class__.__name__}({self.cls.__name__}, "
            f"args={self.cls_args}, kwargs={sorted(self.cls_kwargs)})"
        )

    def updated(self, **cls_kwargs) -> DelayedInstantiator:
        """
        A copy of this object with some of the stored kwargs replaced.

        Dictionary-valued kwargs (e.g. calculator `input_data`) are merged one level
        deep instead of being replaced, so a non-self-consistent calculation can be
        derived from a self-consistent one by passing only the keys that differ.
        """
        merged = dict(self.cls_kwargs)
        for key, value in cls_kwargs.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        new = copy(self)
        new.cls_kwargs = merged
        return new

    def instantiate(
        self,
        *args,
        args_behavior: Literal[
            "fail", "ignore_stored", "ignore_new", "first_new", "first_stored"
        ] = "fail",
        kwargs_behavior: Literal[
            "fail", "new_updates_stored", "stored_updates_new"
        ] = "new_updates_stored",
        **kwargs,
    ):
        """
        Build the stored class, combining stored and newly provided (kw)args.

        Args:
            *args: Positional arguments for the class.
            args_behavior: What to do when both stored and new args exist.
            kwargs_behavior: What to do when both stored and new kwargs exist.
            **kwargs: Keyword arguments for the class.

        Returns:
            An instance of the stored class.

        Raises:
            ValueError: If (kw)args are both stored _and_ provided and the
                corresponding behavior parameter is set to fail.
        """
        if len(args) > 0 and len(self.cls_args) > 0:
            match args_behavior:
                case "fail":
                    raise ValueError(
                        f"{self.__class__.__name__} trying to build {self.cls} got "
                        f"args {args} when it had stored args {self.cls_args} and was"
                        f" set to fail on overlap."
                    )
                case "ignore_stored":
                    pass
                case "ignore_new":
                    args = self.cls_args
                case "first_new":
                    args = args + self.cls_args
                case "first_stored":
                    args = self.cls_args + args
        elif len(self.cls_args) > 0:
            args = self.cls_args

        if len(kwargs) > 0 and len(self.cls_kwargs) > 0:
            match kwargs_behavior:
                case "fail":
                    raise ValueError(
                        f"{self.__class__.__name__} trying to build {self.cls} got "
                        f"kwargs {kwargs} when it had stored kwargs {self.cls_kwargs} "
                        f"and was set to fail on overlap."
                    )
                case "new_updates_stored":
                    kwargs = {**self.cls_kwargs, **kwargs}
                case "stored_updates_new":
                    kwargs = {**kwargs, **self.cls_kwargs}
        elif len(self.cls_kwargs) > 0:
            kwargs = self.cls_kwargs

        logger.debug("Instantiating %s", self.cls.__name__)
        return self.cls(*args, **kwargs)
