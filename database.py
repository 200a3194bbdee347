import json
import logging
import os
from typing import Dict, List, Optional

from pydantic import ValidationError
from tinydb import Query, TinyDB

from models import Fertilizer, Plant, WaterProfile
from settings import load_settings

logger = logging.getLogger(__name__)


def open_db(path: Optional[str] = None) -> TinyDB:
    path = path or load_settings().db_path
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    return TinyDB(path)


def _fertilizer_from_record(record: dict) -> Fertilizer:
    # Etikettenangaben in % (P2O5, K2O, ...) statt elementarer mg/ml
    if 'label' in record:
        record = dict(record)
        label = record.pop('label')
        record.pop('composition', None)
        return Fertilizer.from_label(record.pop('name'), label, **record)
    return Fertilizer.model_validate(record)


def get_all_plants(db: TinyDB) -> List[Plant]:
    plants = []
    for item in db.table('plants').all():
        try:
            plants.append(Plant.model_validate(item))
        except ValidationError as e:
            logger.warning("Pflanze %r übersprungen: %s", item.get('name'), e)
    return plants


def get_all_fertilizers(db: TinyDB) -> List[Fertilizer]:
    ferts = []
    for item in db.table('fertilizers').all():
        try:
            ferts.append(_fertilizer_from_record(item))
        except (ValidationError, ValueError, KeyError) as e:
            logger.warning("Dünger %r übersprungen: %s", item.get('name'), e)
    return ferts


def get_catalog(db: TinyDB) -> Dict[str, Fertilizer]:
    """Name -> Dünger, in Einfügereihenfolge der Datenbank."""
    return {f.name: f for f in get_all_fertilizers(db)}


def get_water_profile(db: TinyDB, name: Optional[str] = None) -> Optional[WaterProfile]:
    table = db.table('water_source')
    records = table.search(Query().name == name) if name else table.all()
    if not records:
        return None
    return WaterProfile.model_validate(records[0])


def save_plant(db: TinyDB, plant: Plant):
    db.table('plants').upsert(plant.model_dump(mode='json'), Query().name == plant.name)


def save_fertilizer(db: TinyDB, fert: Fertilizer):
    db.table('fertilizers').upsert(fert.model_dump(mode='json'), Query().name == fert.name)


def save_water_profile(db: TinyDB, water: WaterProfile):
    db.table('water_source').upsert(water.model_dump(mode='json'), Query().name == water.name)


def import_external(db: TinyDB, path: str) -> int:
    """Importiert eine externe JSON-DB (z.B. data/db.json) ohne Duplikate.

    Erwartetes Format: {"plants": {id: {...}}, "fertilizers": {id: {...}}, "water_source": {id: {...}}}
    Gibt die Anzahl neu angelegter Einträge zurück.
    """
    with open(path, 'r', encoding='utf-8') as f:
        ext = json.load(f)

    added = 0
    plants_table = db.table('plants')
    for _id, p in (ext.get('plants') or {}).items():
        name = p.get('name')
        if name and not plants_table.search(Query().name == name):
            plants_table.insert({'name': name, 'phases': p.get('phases', {})})
            added += 1

    ferts_table = db.table('fertilizers')
    for _id, fert in (ext.get('fertilizers') or {}).items():
        name = fert.get('name')
        if name and not ferts_table.search(Query().name == name):
            ferts_table.insert(dict(fert))
            added += 1

    water_table = db.table('water_source')
    for _id, ws in (ext.get('water_source') or {}).items():
        name = ws.get('name', _id)
        if ws.get('values') and not water_table.search(Query().name == name):
            water_table.insert({'name': name, 'values': ws['values'],
                                'share_percent': ws.get('share_percent', 100.0)})
            added += 1

    logger.info("%d Einträge aus %s importiert", added, path)
    return added
