"""
CLI para ejecutar sincronizaciones y administrar mapeos desde línea de comandos.
"""
import csv
import sys
import logging

from .config import settings
from .exceptions import LockTimeoutError, MappingFileError, MappingValidationError
from .mapper_service import MapperService
from .order_service import OrderService
from .stock_service import StockService

# Configurar logging para CLI
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CSV_INTERNAL_COLUMN = "internal_id"
CSV_EXTERNAL_COLUMN = "external_id"


def _banner(title: str):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60 + "\n")


def _load_mapper() -> MapperService:
    mapper = MapperService()
    mapper.load_mappings()
    return mapper


def read_mappings_csv(csv_path: str) -> tuple[dict[str, str], int]:
    """
    Lee pares interno -> externo de un CSV con columnas internal_id, external_id.

    Returns:
        (mapeos, filas omitidas)

    Raises:
        ValueError: Si faltan las columnas requeridas
    """
    mappings: dict[str, str] = {}
    skipped = 0

    with open(csv_path, newline='', encoding='utf-8-sig') as f:
        reader = csv.DictReader(f)
        columns = reader.fieldnames or []
        if CSV_INTERNAL_COLUMN not in columns or CSV_EXTERNAL_COLUMN not in columns:
            raise ValueError(
                f"El CSV debe tener las columnas '{CSV_INTERNAL_COLUMN}' y '{CSV_EXTERNAL_COLUMN}'"
            )

        for line_number, row in enumerate(reader, start=2):
            internal_id = (row.get(CSV_INTERNAL_COLUMN) or "").strip()
            external_id = (row.get(CSV_EXTERNAL_COLUMN) or "").strip()
            if not internal_id or not external_id:
                logger.warning(f"Fila {line_number}: mapeo incompleto, omitida")
                skipped += 1
                continue
            mappings[internal_id] = external_id

    return mappings, skipped


def test_connections():
    """Prueba las conexiones con el inventario y el marketplace"""
    _banner("PROBANDO CONEXIONES")

    stock_service = StockService(mapper=MapperService())
    inventory_ok = stock_service.inventory_client.test_connection()
    marketplace_ok = stock_service.marketplace_client.test_connection()

    print(f"INVENTARIO ({settings.INVENTORY_API_URL}):")
    print(f"  Estado: {'OK' if inventory_ok else 'ERROR'}")
    print()
    print(f"MARKETPLACE ({settings.MARKETPLACE_API_URL}, campaña {settings.MARKETPLACE_CAMPAIGN_ID}):")
    print(f"  Estado: {'OK' if marketplace_ok else 'ERROR'}")
    print()

    overall = "OK" if inventory_ok and marketplace_ok else "ERROR"
    print("-" * 60)
    print(f"RESULTADO GENERAL: {overall}")
    print("-" * 60)

    return 0 if overall == "OK" else 1


def sync_stocks(verbose: bool = False):
    """Ejecuta el barrido completo de stock"""
    _banner("BARRIDO COMPLETO DE STOCK INVENTARIO → MARKETPLACE")

    try:
        stock_service = StockService(mapper=_load_mapper())
        stats = stock_service.full_sweep()
    except MappingFileError as e:
        print(f"\n❌ ERROR EN EL ARCHIVO DE MAPEO:")
        print(f"   {e}")
        return 1

    _banner("RESUMEN DEL BARRIDO")
    print(f"Total de productos:  {stats.total}")
    print(f"Sincronizados:       {stats.synced}")
    print(f"Omitidos:            {stats.skipped}")
    print(f"Errores:             {len(stats.errors)}")
    print(f"Tiempo total:        {stats.total_time_seconds:.2f}s")
    print()

    if stats.errors:
        print("-" * 60)
        print("PRODUCTOS CON ERROR")
        print("-" * 60 + "\n")
        errors = stats.errors if verbose else stats.errors[:20]
        for error in errors:
            print(f"✗ {error.item_id}")
            print(f"  Error: {error.error}")
        if len(errors) < len(stats.errors):
            print(f"\n... y {len(stats.errors) - len(errors)} más (use --verbose)")
        print()

    return 0 if not stats.errors else 1


def push_stock(internal_id: str):
    """Envía el stock de un solo producto"""
    _banner(f"ENVÍO DE STOCK: {internal_id}")

    try:
        stock_service = StockService(mapper=_load_mapper())
        pushed = stock_service.push_stock(internal_id)
    except Exception as e:
        print(f"❌ Error: {e}")
        logger.exception("Error durante el envío de stock")
        return 1

    if not pushed:
        print(f"⚠️  El producto {internal_id} no tiene mapeo. Nada enviado.")
        return 1

    print(f"✓ Stock de {internal_id} enviado al marketplace")
    return 0


def _print_order_stats(title: str, stats) -> int:
    _banner(title)
    print(f"Procesados:  {stats.processed}")
    print(f"Exitosos:    {stats.successful}")
    print(f"Fallidos:    {stats.failed}")
    print()
    for error in stats.errors:
        label = error.item_id or error.type
        print(f"✗ {label}: {error.error}")
    return 0 if not stats.errors else 1


def poll_orders():
    """Procesa los pedidos nuevos del marketplace"""
    order_service = OrderService(mapper=_load_mapper())
    stats = order_service.poll_and_process_orders()
    return _print_order_stats("POLLING DE PEDIDOS NUEVOS", stats)


def process_shipments():
    """Crea los envíos de los pedidos enviados"""
    order_service = OrderService(mapper=MapperService())
    stats = order_service.process_shipped_orders()
    return _print_order_stats("POLLING DE PEDIDOS ENVIADOS", stats)


def mapping_info():
    """Muestra información del archivo de mapeo"""
    _banner("INFORMACIÓN DE MAPEOS")

    mapper = MapperService()
    try:
        mapper.load_mappings()
    except MappingFileError as e:
        print(f"❌ Archivo de mapeo inválido: {e}")
        return 1

    stats = mapper.product_store.get_stats()
    print(f"✓ Mapeos de productos:  {stats.total_mappings}")
    print(f"  Archivo:              {stats.file_path}")
    print(f"  Cargado:              {stats.last_loaded}")
    print(f"  Pedidos mapeados:     {len(mapper.order_store.load_all())}")
    print()

    examples = list(mapper.product_store.snapshot.forward.items())[:10]
    if examples:
        print("Ejemplos:")
        for internal_id, external_id in examples:
            print(f"  {internal_id} -> {external_id}")
        print()

    return 0


def import_csv(csv_path: str, replace: bool = False):
    """Importa mapeos desde CSV y los guarda en el archivo de mapeo"""
    _banner("IMPORTAR MAPEOS DESDE CSV")

    try:
        imported, skipped = read_mappings_csv(csv_path)
    except (OSError, ValueError) as e:
        print(f"❌ Error al leer el CSV: {e}")
        return 1

    if not imported:
        print("❌ No se encontró ningún mapeo válido en el CSV.")
        return 1

    mapper = MapperService()
    store = mapper.product_store
    try:
        if replace:
            store.save(imported)
        else:
            store.load()
            for internal_id, external_id in imported.items():
                try:
                    store.add_mapping(internal_id, external_id)
                except MappingValidationError as e:
                    logger.warning(f"Mapeo omitido: {e}")
                    skipped += 1
            store.save(store.snapshot.as_dict())
        store.load()
    except (MappingFileError, LockTimeoutError, MappingValidationError) as e:
        print(f"❌ Error al guardar los mapeos: {e}")
        return 1

    print(f"Filas importadas:      {len(imported)}")
    print(f"Filas omitidas:        {skipped}")
    print(f"Total en el archivo:   {len(store.snapshot)}")
    print(f"Archivo:               {store.file_path}")
    print()
    return 0


def main():
    """Punto de entrada del CLI"""
    import argparse

    parser = argparse.ArgumentParser(
        description="Conector ERP-Marketplace: stock y pedidos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Ejemplos:
  %(prog)s test                      Probar conexiones
  %(prog)s sync-stocks               Barrido completo de stock
  %(prog)s push-stock <internal_id>  Enviar stock de un producto
  %(prog)s poll-orders               Procesar pedidos nuevos
  %(prog)s process-shipments         Procesar pedidos enviados
  %(prog)s mapping-info              Ver info del archivo de mapeo
  %(prog)s import-csv mapeos.csv     Importar mapeos desde CSV
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Comando a ejecutar')

    subparsers.add_parser('test', help='Probar conexiones con inventario y marketplace')

    sync_parser = subparsers.add_parser('sync-stocks', help='Barrido completo de stock')
    sync_parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Mostrar todos los productos con error'
    )

    push_parser = subparsers.add_parser('push-stock', help='Enviar el stock de un producto')
    push_parser.add_argument('internal_id', help='ID del producto en inventario')

    subparsers.add_parser('poll-orders', help='Procesar pedidos nuevos del marketplace')
    subparsers.add_parser('process-shipments', help='Crear envíos de pedidos enviados')
    subparsers.add_parser('mapping-info', help='Ver información del archivo de mapeo')

    import_parser = subparsers.add_parser('import-csv', help='Importar mapeos desde CSV')
    import_parser.add_argument('csv_path', help='CSV con columnas internal_id, external_id')
    import_parser.add_argument(
        '--replace',
        action='store_true',
        help='Reemplazar los mapeos existentes en lugar de combinarlos'
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == 'test':
        return test_connections()
    elif args.command == 'sync-stocks':
        return sync_stocks(verbose=args.verbose)
    elif args.command == 'push-stock':
        return push_stock(args.internal_id)
    elif args.command == 'poll-orders':
        return poll_orders()
    elif args.command == 'process-shipments':
        return process_shipments()
    elif args.command == 'mapping-info':
        return mapping_info()
    elif args.command == 'import-csv':
        return import_csv(args.csv_path, replace=args.replace)

    return 0


if __name__ == "__main__":
    sys.exit(main())
