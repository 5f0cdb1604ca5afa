"""Baryon reservoirs, galaxies, subhalos and halos.

The merger tree is stored as an arena: every :class:`Subhalo` refers to its
descendant only through ``descendant_id`` and the :class:`HaloArena`
resolves that identifier.  A :class:`Halo` owns its subhalos for a single
snapshot, a :class:`Subhalo` owns its galaxies, and galaxies move between
subhalos only through :meth:`Subhalo.transfer_galaxies_to`.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .errors import GalaxyCompositionError, TreeConsistencyError

logger = logging.getLogger(__name__)


@dataclass
class BaryonComponent:
    """A baryon reservoir with mass, metals and specific angular momentum."""

    mass: float = 0.0
    mass_metals: float = 0.0
    sAM: float = 0.0
    rscale: float = 0.0

    def restore_baryon(self) -> None:
        """Zero every property of the reservoir."""

        self.mass = 0.0
        self.mass_metals = 0.0
        self.sAM = 0.0
        self.rscale = 0.0

    def angular_momentum(self) -> float:
        return self.mass * self.sAM

    def metallicity(self) -> float:
        if self.mass <= 0.0:
            return 0.0
        return self.mass_metals / self.mass

    def __iadd__(self, other: "BaryonComponent") -> "BaryonComponent":
        total_mass = self.mass + other.mass
        if total_mass > 0.0:
            self.sAM = (self.angular_momentum() + other.angular_momentum()) / total_mass
        self.mass = total_mass
        self.mass_metals += other.mass_metals
        return self


class GalaxyType(enum.Enum):
    CENTRAL = 0
    TYPE1 = 1
    TYPE2 = 2


class SubhaloType(enum.Enum):
    CENTRAL = 0
    SATELLITE = 1


@dataclass
class InteractionItem:
    """Galaxy interaction events recorded during the current snapshot."""

    major_mergers: int = 0
    minor_mergers: int = 0
    disk_instabilities: int = 0

    def restore_interaction_item(self) -> None:
        self.major_mergers = 0
        self.minor_mergers = 0
        self.disk_instabilities = 0

    def mergers(self) -> int:
        return self.major_mergers + self.minor_mergers


@dataclass(frozen=True)
class HistoryItem:
    """Star formation rates of a galaxy recorded at one snapshot."""

    snapshot: int
    sfr_disk: float
    sfr_bulge_mergers: float
    sfr_bulge_diskins: float
    sfr_z_disk: float
    sfr_z_bulge_mergers: float
    sfr_z_bulge_diskins: float


@dataclass(eq=False)
class Galaxy:
    """A galaxy made of disk and bulge gas/stars plus a central black hole.

    Attributes
    ----------
    vmax : float
        Maximum circular velocity used to convert angular momenta into
        scale radii [km/s].
    sfr_disk, sfr_z_disk : float
        Disk star formation rate and metal-weighted rate accumulated over the
        current snapshot [Msun/Gyr].
    sfr_bulge_mergers, sfr_bulge_diskins : float
        Starburst rates triggered by galaxy mergers and disk instabilities.
    concentration_type2, msubhalo_type2, lambda_type2 : float
        Properties of the last subhalo that hosted the galaxy, frozen when
        the galaxy became a TYPE2.
    """

    id: int = 0
    galaxy_type: GalaxyType = GalaxyType.CENTRAL
    vmax: float = 0.0

    disk_gas: BaryonComponent = field(default_factory=BaryonComponent)
    disk_stars: BaryonComponent = field(default_factory=BaryonComponent)
    bulge_gas: BaryonComponent = field(default_factory=BaryonComponent)
    bulge_stars: BaryonComponent = field(default_factory=BaryonComponent)
    smbh: BaryonComponent = field(default_factory=BaryonComponent)

    galaxymergers_burst_stars: BaryonComponent = field(default_factory=BaryonComponent)
    diskinstabilities_burst_stars: BaryonComponent = field(default_factory=BaryonComponent)

    sfr_disk: float = 0.0
    sfr_z_disk: float = 0.0
    sfr_bulge_mergers: float = 0.0
    sfr_z_bulge_mergers: float = 0.0
    sfr_bulge_diskins: float = 0.0
    sfr_z_bulge_diskins: float = 0.0

    concentration_type2: float = 0.0
    msubhalo_type2: float = 0.0
    lambda_type2: float = 0.0

    interaction: InteractionItem = field(default_factory=InteractionItem)
    history: List[HistoryItem] = field(default_factory=list)

    mean_stellar_age: float = 0.0
    total_stellar_mass_ever_formed: float = 0.0

    def stellar_mass(self) -> float:
        return self.disk_stars.mass + self.bulge_stars.mass

    def gas_mass(self) -> float:
        return self.disk_gas.mass + self.bulge_gas.mass

    def baryon_mass(self) -> float:
        return self.stellar_mass() + self.gas_mass() + self.smbh.mass

    def sfr(self) -> float:
        return self.sfr_disk + self.sfr_bulge_mergers + self.sfr_bulge_diskins

    def stellar_age(self) -> float:
        """Return the mass-weighted cosmic age of the stars formed so far [Gyr]."""

        if self.total_stellar_mass_ever_formed <= 0.0:
            return 0.0
        return self.mean_stellar_age / self.total_stellar_mass_ever_formed

    def reset_snapshot_rates(self) -> None:
        """Zero the per-snapshot star formation accumulators."""

        self.sfr_disk = 0.0
        self.sfr_z_disk = 0.0
        self.sfr_bulge_mergers = 0.0
        self.sfr_z_bulge_mergers = 0.0
        self.sfr_bulge_diskins = 0.0
        self.sfr_z_bulge_diskins = 0.0


@dataclass
class CoolingSubhaloTracking:
    """Cooling history carried along the main progenitor branch."""

    mass_cooled: float = 0.0
    elapsed_time: float = 0.0

    def record(self, mcooled: float, delta_t: float) -> None:
        self.mass_cooled += mcooled
        self.elapsed_time += delta_t


@dataclass(eq=False)
class Subhalo:
    """A dark-matter subhalo hosting galaxies and halo gas reservoirs.

    ``descendant_id`` is ``None`` when the branch terminates at this
    snapshot.  Galaxies are kept with the central (or TYPE1) galaxy first.
    """

    id: int
    haloID: int
    snapshot: int
    subhalo_type: SubhaloType = SubhaloType.CENTRAL
    main_progenitor: bool = False
    descendant_id: Optional[int] = None
    last_snapshot_identified: int = -1

    Mvir: float = 0.0
    Vvir: float = 0.0
    vmax: float = 0.0
    concentration: float = 0.0
    lambda_: float = 0.0

    galaxies: List[Galaxy] = field(default_factory=list)
    cold_halo_gas: BaryonComponent = field(default_factory=BaryonComponent)
    hot_halo_gas: BaryonComponent = field(default_factory=BaryonComponent)
    ejected_galaxy_gas: BaryonComponent = field(default_factory=BaryonComponent)
    cooling_subhalo_tracking: CoolingSubhaloTracking = field(default_factory=CoolingSubhaloTracking)

    def galaxy_count(self) -> int:
        return len(self.galaxies)

    def _galaxies_of_type(self, galaxy_type: GalaxyType) -> List[Galaxy]:
        return [galaxy for galaxy in self.galaxies if galaxy.galaxy_type is galaxy_type]

    def central_galaxy(self) -> Optional[Galaxy]:
        centrals = self._galaxies_of_type(GalaxyType.CENTRAL)
        return centrals[0] if centrals else None

    def type1_galaxy(self) -> Optional[Galaxy]:
        type1s = self._galaxies_of_type(GalaxyType.TYPE1)
        return type1s[0] if type1s else None

    def type2_galaxies(self) -> List[Galaxy]:
        return self._galaxies_of_type(GalaxyType.TYPE2)

    def check_subhalo_galaxy_composition(self) -> None:
        """Raise :class:`GalaxyCompositionError` for an invalid galaxy mix."""

        n_central = len(self._galaxies_of_type(GalaxyType.CENTRAL))
        n_type1 = len(self._galaxies_of_type(GalaxyType.TYPE1))
        problems = []
        if n_central > 1:
            problems.append(f"{n_central} central galaxies")
        if n_type1 > 1:
            problems.append(f"{n_type1} type 1 galaxies")
        if self.subhalo_type is SubhaloType.SATELLITE and n_central > 0:
            problems.append("a central galaxy in a satellite subhalo")
        if self.subhalo_type is SubhaloType.CENTRAL and n_type1 > 0:
            problems.append("a type 1 galaxy in a central subhalo")
        if problems:
            raise GalaxyCompositionError(
                f"Subhalo {self.id} (snapshot {self.snapshot}) has " + ", ".join(problems)
            )

    def transfer_galaxies_to(self, target: "Subhalo") -> None:
        """Move ownership of every galaxy to ``target``.

        Centrals and TYPE1 galaxies are placed ahead of TYPE2 galaxies in the
        target list.
        """

        if target is self:
            raise TreeConsistencyError(f"Subhalo {self.id} cannot transfer galaxies to itself")
        moved = self.galaxies
        self.galaxies = []
        main = [g for g in moved if g.galaxy_type is not GalaxyType.TYPE2]
        others = [g for g in moved if g.galaxy_type is GalaxyType.TYPE2]
        target.galaxies[:0] = main
        target.galaxies.extend(others)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "transfer_galaxies_to: %d galaxies from subhalo %d to subhalo %d",
                len(moved),
                self.id,
                target.id,
            )

    def total_baryon_mass(self) -> float:
        """Return the baryon mass in galaxies plus every halo gas reservoir."""

        mass = sum(galaxy.baryon_mass() for galaxy in self.galaxies)
        mass += self.cold_halo_gas.mass + self.hot_halo_gas.mass + self.ejected_galaxy_gas.mass
        return mass


@dataclass(eq=False)
class Halo:
    """Subhalos that share one host halo at one snapshot."""

    id: int
    snapshot: int
    Mvir: float = 0.0
    subhalos: List[Subhalo] = field(default_factory=list)

    def add_subhalo(self, subhalo: Subhalo) -> None:
        if subhalo.snapshot != self.snapshot:
            raise TreeConsistencyError(
                f"Subhalo {subhalo.id} at snapshot {subhalo.snapshot} cannot join halo {self.id} "
                f"at snapshot {self.snapshot}"
            )
        if subhalo.subhalo_type is SubhaloType.CENTRAL:
            if self.central_subhalo is not None:
                raise TreeConsistencyError(f"Halo {self.id} already has a central subhalo")
            self.subhalos.insert(0, subhalo)
        else:
            self.subhalos.append(subhalo)

    @property
    def central_subhalo(self) -> Optional[Subhalo]:
        for subhalo in self.subhalos:
            if subhalo.subhalo_type is SubhaloType.CENTRAL:
                return subhalo
        return None

    def all_subhalos(self) -> List[Subhalo]:
        return list(self.subhalos)

    def galaxy_count(self) -> int:
        return sum(subhalo.galaxy_count() for subhalo in self.subhalos)


class HaloArena:
    """Identifier-indexed storage of halos and subhalos across snapshots."""

    def __init__(self) -> None:
        self._halos: Dict[int, List[Halo]] = {}
        self._subhalos: Dict[int, Subhalo] = {}

    def add_halo(self, halo: Halo) -> None:
        for subhalo in halo.subhalos:
            if subhalo.id in self._subhalos:
                raise TreeConsistencyError(f"Duplicate subhalo id {subhalo.id}")
            self._subhalos[subhalo.id] = subhalo
        self._halos.setdefault(halo.snapshot, []).append(halo)

    def halos_at(self, snapshot: int) -> List[Halo]:
        return list(self._halos.get(snapshot, []))

    def snapshots(self) -> List[int]:
        return sorted(self._halos)

    def subhalo(self, subhalo_id: int) -> Subhalo:
        try:
            return self._subhalos[subhalo_id]
        except KeyError:
            raise TreeConsistencyError(f"Unknown subhalo id {subhalo_id}") from None

    def descendant_of(self, subhalo: Subhalo) -> Optional[Subhalo]:
        """Return the descendant subhalo or ``None`` for a terminating branch."""

        if subhalo.descendant_id is None:
            return None
        return self.subhalo(subhalo.descendant_id)

    def __iter__(self) -> Iterator[Halo]:
        for snapshot in self.snapshots():
            yield from self._halos[snapshot]

    def __len__(self) -> int:
        return sum(len(halos) for halos in self._halos.values())


__all__ = [
    "BaryonComponent",
    "GalaxyType",
    "SubhaloType",
    "InteractionItem",
    "HistoryItem",
    "Galaxy",
    "CoolingSubhaloTracking",
    "Subhalo",
    "Halo",
    "HaloArena",
]
